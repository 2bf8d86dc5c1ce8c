"""
DDP 传输实现模块 - 基于 websockets 的 Meteor DDP 协议客户端。

Rocket.Chat 的实时接口使用 Meteor 的 DDP 协议（Distributed Data Protocol），
所有消息都是 JSON 文本帧，通过 "msg" 字段区分类型。

【DDP 协议简述】
- connect → connected：握手，服务器返回会话 ID
- ping ↔ pong：双向保活
- method → result：远程方法调用（按 id 关联请求和结果）
- sub → ready / nosub：订阅集合，ready 表示订阅就绪，nosub 表示订阅失败或被移除
- added / changed / removed：订阅集合的数据变更事件
- unsub：取消订阅

【事件分发】
读循环只负责解析帧：方法结果直接唤醒等待中的 Future，
集合事件放入分发队列，由单独的分发协程按到达顺序交给订阅处理函数。
这样处理函数里再发起方法调用（例如回复消息）也不会阻塞读循环。

【Java 开发者类比】
- _pending 字典类似于 Java 中 requestId → CompletableFuture 的映射表
- 分发队列 + 分发协程类似于单线程的 ExecutorService
"""

import asyncio
import hashlib
import itertools
import json
from typing import Any

import websockets
from loguru import logger

from rocketdriver.errors import AuthenticationError, MethodCallError, NotConnectedError
from rocketdriver.transport.base import EventHandler, Subscription, Transport
from rocketdriver.utils.helpers import strip_protocol

DDP_VERSION = "1"
DDP_SUPPORTED_VERSIONS = ["1", "pre2", "pre1"]
PING_INTERVAL_S = 30.0  # 客户端主动 ping 的间隔（秒）


class DDPTransport(Transport):
    """
    基于 websockets 的 DDP 传输实现。

    属性:
        url: WebSocket 地址（ws(s)://host/websocket）
        timeout: 单次方法调用/订阅等待的超时（秒）
        session_id: 握手成功后服务器分配的会话 ID
        login_result: 最近一次登录结果（包含 id、token 等）
        _pending: 等待结果的方法调用 {调用 ID: (方法名, Future)}
        _pending_subs: 等待 ready 的订阅 {订阅 ID: Future}
        _events: 集合事件分发队列
    """

    def __init__(self, host: str, use_ssl: bool = False, timeout_ms: int = 20000,
                 ping_interval_s: float = PING_INTERVAL_S):
        super().__init__()
        scheme = "wss" if use_ssl else "ws"
        self.url = f"{scheme}://{strip_protocol(host).rstrip('/')}/websocket"
        self.timeout = max(0.1, timeout_ms / 1000.0)
        self.ping_interval_s = ping_interval_s
        self.session_id: str | None = None
        self.login_result: dict[str, Any] | None = None

        self._ws: Any = None
        self._connected = False
        self._ids = itertools.count(1)
        self._pending: dict[str, tuple[str, asyncio.Future]] = {}
        self._pending_subs: dict[str, asyncio.Future] = {}
        self._events: asyncio.Queue[tuple[Subscription, dict[str, Any]]] = asyncio.Queue()
        self._reader_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connected and self._ws is not None

    # ---- 生命周期 ---------------------------------------------------------

    async def open(self) -> None:
        """建立 WebSocket 连接并发送 DDP connect 握手。握手结果由读循环处理。"""
        logger.info(f"[ddp] Connecting to {self.url}")
        self._ws = await websockets.connect(self.url, open_timeout=self.timeout)
        self._reader_task = asyncio.create_task(self._read_loop())
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        await self._send({"msg": "connect", "version": DDP_VERSION, "support": DDP_SUPPORTED_VERSIONS})

    async def close(self) -> None:
        """
        关闭连接。

        清理顺序：保活任务 → 读循环 → 分发协程 → WebSocket，
        最后让所有等待中的调用以 NotConnectedError 失败。
        """
        self._connected = False
        for task in (self._ping_task, self._reader_task, self._dispatch_task):
            if task and task is not asyncio.current_task():
                task.cancel()
        self._ping_task = self._reader_task = self._dispatch_task = None
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"[ddp] Error closing websocket: {e}")
            self._ws = None
        self._fail_pending(NotConnectedError("DDP connection closed"))
        self.subscriptions.clear()
        self.session_id = None
        logger.info("[ddp] Connection closed")

    # ---- 认证 ------------------------------------------------------------

    async def login(self, credentials: dict[str, Any]) -> dict[str, Any]:
        """
        登录。支持三种凭证：
        - {"resume": token}：使用已有登录令牌恢复
        - {"ldap": True, ...}：LDAP 载荷原样传给服务器
        - {"username": ..., "password": ...}：密码以 SHA-256 摘要形式发送
        """
        if credentials.get("resume"):
            params: dict[str, Any] = {"resume": credentials["resume"]}
        elif credentials.get("ldap"):
            params = dict(credentials)
        else:
            username = str(credentials.get("username") or "")
            user_key = "email" if "@" in username else "username"
            digest = hashlib.sha256(str(credentials.get("password") or "").encode("utf-8")).hexdigest()
            params = {
                "user": {user_key: username},
                "password": {"digest": digest, "algorithm": "sha-256"},
            }
        try:
            result = await self.call("login", params)
        except MethodCallError as e:
            raise AuthenticationError(str(e)) from e
        if not isinstance(result, dict) or not result.get("id"):
            raise AuthenticationError("Login result missing user id")
        self.login_result = result
        return result

    async def logout(self) -> None:
        await self.call("logout")
        self.login_result = None

    # ---- 方法调用与订阅 ----------------------------------------------------

    async def call(self, method: str, *params: Any) -> Any:
        """发送 method 消息并等待对应的 result。服务器返回错误时抛出 MethodCallError。"""
        if not self.connected:
            raise NotConnectedError(f"Cannot call {method}, DDP not connected")
        call_id = str(next(self._ids))
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = (method, future)
        try:
            await self._send({"msg": "method", "method": method, "params": list(params), "id": call_id})
            return await asyncio.wait_for(future, self.timeout)
        finally:
            self._pending.pop(call_id, None)

    async def subscribe(
        self,
        name: str,
        params: list[Any],
        on_event: EventHandler | None = None,
    ) -> Subscription:
        """
        订阅集合，等待 ready 后返回句柄。

        句柄在发送 sub 之前就登记到 subscriptions，避免丢失 ready 之前到达的事件；
        订阅失败时再移除。
        """
        if not self.connected:
            raise NotConnectedError(f"Cannot subscribe to {name}, DDP not connected")
        sub_id = str(next(self._ids))
        subscription = Subscription(self, sub_id, name, params)
        if on_event:
            subscription.on_event(on_event)
        self.subscriptions[sub_id] = subscription
        ready = asyncio.get_running_loop().create_future()
        self._pending_subs[sub_id] = ready
        try:
            await self._send({"msg": "sub", "id": sub_id, "name": name, "params": params})
            await asyncio.wait_for(ready, self.timeout)
        except BaseException:
            self.subscriptions.pop(sub_id, None)
            raise
        finally:
            self._pending_subs.pop(sub_id, None)
        logger.debug(f"[ddp] Subscribed to {name} ({sub_id})")
        return subscription

    async def unsubscribe(self, id: str) -> None:
        subscription = self.subscriptions.pop(id, None)
        if subscription is None:
            logger.debug(f"[ddp] Unsubscribe ignored, no subscription {id}")
            return
        if self.connected:
            await self._send({"msg": "unsub", "id": id})
        logger.debug(f"[ddp] Unsubscribed from {subscription.name} ({id})")

    # ---- 读循环与消息处理 ---------------------------------------------------

    async def _send(self, data: dict[str, Any]) -> None:
        if self._ws is None:
            raise NotConnectedError("DDP websocket not open")
        await self._ws.send(json.dumps(data))

    async def _read_loop(self) -> None:
        """持续读取服务器帧并交给 _handle_frame 处理。连接断开时让等待中的调用失败。"""
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"[ddp] Invalid JSON frame: {str(raw)[:100]}")
                    continue
                if isinstance(data, dict):
                    await self._handle_frame(data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ddp] Connection error: {e}")
        finally:
            self._connected = False
            self._fail_pending(NotConnectedError("DDP connection lost"))

    async def _handle_frame(self, data: dict[str, Any]) -> None:
        kind = data.get("msg")

        if kind == "connected":
            self.session_id = data.get("session")
            self._connected = True
            if self._ping_task is None or self._ping_task.done():
                self._ping_task = asyncio.create_task(self._ping_loop())
            logger.debug(f"[ddp] Session {self.session_id} established")
            self._notify_open()

        elif kind == "failed":
            logger.error(f"[ddp] Server rejected protocol version, suggests {data.get('version')}")

        elif kind == "ping":
            pong: dict[str, Any] = {"msg": "pong"}
            if "id" in data:
                pong["id"] = data["id"]
            await self._send(pong)

        elif kind == "result":
            entry = self._pending.get(str(data.get("id")))
            if entry is None:
                return
            method, future = entry
            if future.done():
                return
            if "error" in data:
                future.set_exception(MethodCallError(method, data["error"]))
            else:
                future.set_result(data.get("result"))

        elif kind == "ready":
            for sub_id in data.get("subs") or []:
                future = self._pending_subs.get(str(sub_id))
                if future and not future.done():
                    future.set_result(None)

        elif kind == "nosub":
            sub_id = str(data.get("id"))
            future = self._pending_subs.get(sub_id)
            if future and not future.done():
                future.set_exception(MethodCallError("subscribe", data.get("error") or "nosub"))
            else:
                self.subscriptions.pop(sub_id, None)

        elif kind in ("added", "changed", "removed"):
            collection = data.get("collection")
            for subscription in list(self.subscriptions.values()):
                if subscription.name == collection:
                    await self._events.put((subscription, data))

        elif kind == "error":
            logger.error(f"[ddp] Server error: {data.get('reason')}")

    async def _dispatch_loop(self) -> None:
        """按到达顺序把集合事件交给订阅处理函数。"""
        while True:
            subscription, event = await self._events.get()
            await subscription.dispatch(event)

    async def _ping_loop(self) -> None:
        while self.connected:
            await asyncio.sleep(self.ping_interval_s)
            try:
                await self._send({"msg": "ping"})
            except Exception as e:
                logger.warning(f"[ddp] Ping failed: {e}")
                return

    def _fail_pending(self, error: Exception) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        for future in self._pending_subs.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        self._pending_subs.clear()
