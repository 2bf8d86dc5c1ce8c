"""
连接管理模块 - 负责传输会话的连接、认证、登出和断开。

【连接超时竞态】
连接超时计时器和"连接已打开"通知是赛跑关系，必须恰好有一方获胜：
- 两者共享同一个一次性 Future（settled），谁先让它进入完成状态谁获胜
- 超时先到：asyncio.wait_for 取消 settled，连接尝试失败（ConnectionTimeoutError）
- 打开先到：settled 得到结果，计时器随 wait_for 一起结束
- 超时之后才打开：监听函数发现尝试已结束，立即关闭刚打开的会话
- 打开与超时在同一轮事件循环中到达：以超时为准，超时分支负责关闭会话

每次失败的尝试都会关闭自己的传输实例，新的 connect() 会先关闭上一个传输实例。

【完成方式】
connect() 既是协程（返回传输对象或抛出异常），
也接受一个错误优先的回调 callback(err, transport)，两种方式同时生效。

【Java 开发者类比】
- settled 相当于只能 complete 一次的 CompletableFuture
- LifecycleEvents 相当于独立的事件广播通道（与一次性的连接结果解耦）
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from loguru import logger

from rocketdriver.bus.queue import LifecycleEvents
from rocketdriver.config.loader import camel_to_snake
from rocketdriver.config.schema import DriverConfig
from rocketdriver.errors import AuthenticationError, ConnectionTimeoutError
from rocketdriver.transport.base import Transport
from rocketdriver.transport.ddp import DDPTransport
from rocketdriver.utils.helpers import maybe_await, strip_protocol

TransportFactory = Callable[[DriverConfig], Transport]
ConnectCallback = Callable[[Exception | None, Transport | None], Any]

LOGIN_OPTIONS = ("username", "password", "ldap", "ldap_options")


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    TIMED_OUT = "timed_out"


@dataclass
class Session:
    """
    当前会话状态。

    属性:
        state: 连接状态
        user_id: 登录成功后的用户 ID（未登录时为 None）
    """

    state: SessionState = SessionState.DISCONNECTED
    user_id: str | None = None


def default_transport_factory(config: DriverConfig) -> Transport:
    """根据配置创建 DDP 传输实例。"""
    return DDPTransport(config.host, use_ssl=config.use_ssl, timeout_ms=config.timeout)


class ConnectionManager:
    """
    传输会话生命周期管理器。

    属性:
        config: 驱动配置（connect/login 的默认值来源）
        events: 生命周期事件广播器
        transport: 当前传输实例（未连接过时为 None）
        session: 当前会话状态
        _on_transport: 每次创建新传输实例后（打开之前）调用的钩子
        _tasks: 后台任务引用（打开连接、关闭迟到的连接）
    """

    def __init__(
        self,
        config: DriverConfig,
        events: LifecycleEvents,
        transport_factory: TransportFactory = default_transport_factory,
        on_transport: Callable[[Transport], None] | None = None,
    ):
        self.config = config
        self.events = events
        self._transport_factory = transport_factory
        self._on_transport = on_transport
        self.transport: Transport | None = None
        self.session = Session()
        self._tasks: set[asyncio.Task] = set()

    @property
    def user_id(self) -> str | None:
        return self.session.user_id

    @property
    def connected(self) -> bool:
        return (
            self.transport is not None
            and self.transport.connected
            and self.session.state is SessionState.CONNECTED
        )

    # ---- 连接 ------------------------------------------------------------

    async def connect(self, callback: ConnectCallback | None = None, **options: Any) -> Transport:
        """
        打开传输会话。

        参数:
            callback: 可选的错误优先回调 callback(err, transport)
            **options: 覆盖配置的参数（如 host、timeout、use_ssl）

        返回:
            已打开的传输实例

        异常:
            ConnectionTimeoutError: 超时时间内未打开
            其他: 传输层 open() 抛出的异常
        """
        config = self.config.merged(**options)
        config = config.merged(host=strip_protocol(config.host))
        logger.info(f"[driver] Connecting {config.safe_dump()}")

        previous = self.transport
        if previous is not None:
            logger.info("[driver] Closing previous connection")
            await self._close_quietly(previous)

        transport = self._transport_factory(config)
        self.transport = transport
        session = self.session = Session(state=SessionState.CONNECTING)
        if self._on_transport:
            self._on_transport(transport)

        settled: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_open() -> None:
            if not settled.done():
                settled.set_result(transport)
            elif session.state is SessionState.CONNECTED and self.transport is transport:
                # 传输层自行重新打开时只广播通知
                self.events.emit("connected")
            elif session.state is not SessionState.CONNECTING:
                logger.info("[driver] Connection opened after attempt was settled, closing")
                self._spawn(self._close_quietly(transport))

        transport.on_open(on_open)
        opening = self._spawn(self._open(transport, settled))

        try:
            await asyncio.wait_for(settled, timeout=config.timeout / 1000.0)
        except asyncio.TimeoutError:
            # 打开通知可能与超时在同一轮事件循环中到达，此时 settled 已有结果；
            # 超时一旦上报，这次打开的会话一律关闭
            session.state = SessionState.TIMED_OUT
            logger.info(f"[driver] Timeout ({config.timeout})")
            opening.cancel()
            await self._close_quietly(transport)
            error = ConnectionTimeoutError(config.timeout)
            await self._complete(callback, error, None)
            raise error from None
        except Exception as e:
            session.state = SessionState.DISCONNECTED
            await self._close_quietly(transport)
            await self._complete(callback, e, None)
            raise

        session.state = SessionState.CONNECTED
        logger.info("[driver] Connected")
        await self._complete(callback, None, transport)
        await self.events.publish("connected")
        return transport

    async def _open(self, transport: Transport, settled: asyncio.Future) -> None:
        try:
            await transport.open()
        except Exception as e:
            logger.error(f"[driver] Failed to connect: {e}")
            if not settled.done():
                settled.set_exception(e)

    @staticmethod
    async def _close_quietly(transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.error(f"[driver] Failed to close connection: {e}")

    @staticmethod
    async def _complete(callback: ConnectCallback | None, error: Exception | None,
                        transport: Transport | None) -> None:
        if callback is None:
            return
        try:
            await maybe_await(callback(error, transport))
        except Exception as e:
            logger.error(f"[driver] Connect callback error: {e}")

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ---- 认证 ------------------------------------------------------------

    async def login(self, **credentials: Any) -> str:
        """
        登录并返回用户 ID。未连接时先用默认配置连接。

        参数:
            **credentials: username、password、ldap、ldap_options（也接受 camelCase，如 ldapOptions），
                未传入或为 None 的凭证取自配置；ldap 为真时走 LDAP 目录服务登录

        异常:
            TypeError: 传入了凭证以外的参数
            AuthenticationError: 服务器拒绝凭证（会话不记录用户 ID）
        """
        options = {camel_to_snake(key): value for key, value in credentials.items()}
        unknown = sorted(set(options) - set(LOGIN_OPTIONS))
        if unknown:
            raise TypeError(f"Unexpected login options: {', '.join(unknown)}")
        config = self.config.merged(**options)
        if self.transport is None or not self.transport.connected:
            await self.connect()

        if config.ldap:
            logger.info(f"[driver] Logging in {config.username} with LDAP")
            payload: dict[str, Any] = {
                "ldap": True,
                "ldapOptions": config.ldap_options,
                "ldapPass": config.password,
                "username": config.username,
            }
        else:
            logger.info(f"[driver] Logging in {config.username}")
            payload = {"username": config.username, "password": config.password}

        try:
            result = await self.transport.login(payload)
        except AuthenticationError as e:
            self.session.user_id = None
            logger.error(f"[driver] Login failed for {config.username}: {e}")
            raise

        self.session.user_id = str(result["id"])
        logger.info(f"[driver] Logged in as {self.session.user_id}")
        return self.session.user_id

    async def logout(self) -> None:
        """取消全部订阅（失败只记录日志）后登出。"""
        if self.transport is None:
            logger.debug("[driver] Logout ignored, not connected")
            return
        await self._unsubscribe_all_quietly()
        await self.transport.logout()
        self.session.user_id = None

    async def disconnect(self) -> None:
        """取消全部订阅、登出并关闭传输会话。订阅或登出失败不会阻止关闭。"""
        logger.info("[driver] Unsubscribing, logging out, disconnecting")
        transport = self.transport
        if transport is None:
            return
        try:
            if transport.connected:
                await self.logout()
        except Exception as e:
            logger.error(f"[driver] Failed logout on disconnect: {e}")
        finally:
            await transport.close()
            self.session.state = SessionState.DISCONNECTED
            self.session.user_id = None
            self.transport = None
        await self.events.publish("disconnected")

    async def _unsubscribe_all_quietly(self) -> None:
        try:
            await self.transport.unsubscribe_all()
        except Exception as e:
            logger.error(f"[driver] Failed unsubscribe: {e}")
