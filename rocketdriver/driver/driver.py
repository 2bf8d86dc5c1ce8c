"""
驱动主类模块 - 把连接、缓存、订阅、过滤和房间成员关系组合成一个显式的驱动实例。

所有会话相关状态（传输会话、消息流订阅、方法缓存、已加入房间、读取游标）
都是 Driver 实例的字段，多个 Driver 可以在同一进程中独立共存。

典型用法：
    driver = Driver(load_config())
    await driver.connect()
    await driver.login()
    await driver.respond_to_messages(on_message)

【Java 开发者类比】
- Driver 相当于一个 Facade，对外暴露统一接口，内部委托给各个组件
"""

import json
from datetime import datetime
from typing import Any

from loguru import logger

from rocketdriver.bus.events import OutgoingMessage
from rocketdriver.bus.queue import LifecycleEvents
from rocketdriver.config.schema import DriverConfig
from rocketdriver.driver.cache import MethodCache
from rocketdriver.driver.connection import (
    ConnectCallback,
    ConnectionManager,
    Session,
    TransportFactory,
    default_transport_factory,
)
from rocketdriver.driver.responder import MessageResponder
from rocketdriver.driver.rooms import RoomMembership
from rocketdriver.driver.stream import MessageHandler, MessageStream
from rocketdriver.errors import NotConnectedError
from rocketdriver.transport.base import Subscription, Transport

ROOM_ID_METHOD = "getRoomIdByNameOrId"
ROOM_NAME_METHOD = "getRoomNameById"
DIRECT_MESSAGE_METHOD = "createDirectMessage"


def _describe(result: Any) -> str:
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


class Driver:
    """
    实时聊天驱动。

    属性:
        config: 驱动配置
        events: 生命周期事件广播（"connected" / "disconnected"）
        connection: 连接管理器
        cache: 方法结果缓存
        rooms: 已加入房间集合
        messages: 消息流订阅持有者
        responder: 消息过滤管道
    """

    def __init__(
        self,
        config: DriverConfig | None = None,
        transport_factory: TransportFactory = default_transport_factory,
        cache: MethodCache | None = None,
    ):
        self.config = config or DriverConfig()
        self.events = LifecycleEvents()
        self.cache = cache or MethodCache()
        self.connection = ConnectionManager(
            self.config,
            self.events,
            transport_factory=transport_factory,
            on_transport=self.setup_method_cache,
        )
        self.rooms = RoomMembership(self.get_room_id, self.async_call)
        self.messages = MessageStream(lambda: self.connection.transport)
        self.responder = MessageResponder(
            self.config, self.messages, self.rooms, lambda: self.connection.user_id,
        )

    # ---- 状态 ------------------------------------------------------------

    @property
    def transport(self) -> Transport | None:
        return self.connection.transport

    @property
    def session(self) -> Session:
        return self.connection.session

    @property
    def user_id(self) -> str | None:
        return self.connection.user_id

    @property
    def last_read_time(self) -> datetime | None:
        return self.responder.last_read_time

    @property
    def subscriptions(self) -> dict[str, Subscription]:
        """当前传输的活动订阅表（未连接时为空）。"""
        transport = self.connection.transport
        return transport.subscriptions if transport else {}

    # ---- 连接生命周期 -------------------------------------------------------

    async def connect(self, callback: ConnectCallback | None = None, **options: Any) -> Transport:
        return await self.connection.connect(callback, **options)

    async def login(self, **credentials: Any) -> str:
        return await self.connection.login(**credentials)

    async def logout(self) -> None:
        await self.connection.logout()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    def setup_method_cache(self, transport: Transport) -> None:
        """为新传输实例绑定缓存调用函数，并按配置（重新）创建各方法缓存。"""
        logger.debug("[driver] Setting up method cache")
        self.cache.use(transport.call)
        self.cache.create(ROOM_ID_METHOD, self.config.room_cache_max_size, self.config.room_cache_max_age)
        self.cache.create(ROOM_NAME_METHOD, self.config.room_cache_max_size, self.config.room_cache_max_age)
        self.cache.create(DIRECT_MESSAGE_METHOD, self.config.dm_cache_max_size, self.config.dm_cache_max_age)

    # ---- 方法调用 ----------------------------------------------------------

    def _require_transport(self) -> Transport:
        transport = self.connection.transport
        if transport is None:
            raise NotConnectedError("Driver not connected, call connect() first")
        return transport

    async def async_call(self, method: str, *params: Any) -> Any:
        """直接通过传输层调用方法（不走缓存）。失败时记录日志后重新抛出。"""
        transport = self._require_transport()
        logger.debug(f"[{method}] Calling (async): {_describe(list(params))}")
        try:
            result = await transport.call(method, *params)
        except Exception as e:
            logger.error(f"[{method}] Error: {e}")
            raise
        if result:
            logger.debug(f"[{method}] Success: {_describe(result)}")
        else:
            logger.debug(f"[{method}] Success")
        return result

    async def cache_call(self, method: str, key: str) -> Any:
        """
        通过方法缓存调用（key 为唯一的字符串参数）。

        异常:
            NotConnectedError: 尚未连接（方法缓存在建立连接时才创建）
        """
        self._require_transport()
        logger.debug(f"[driver] Returning cached result for {method}({key})")
        try:
            result = await self.cache.call(method, key)
        except Exception as e:
            logger.error(f"[{method}] Error: {e}")
            raise
        if result:
            logger.debug(f"[{method}] Success: {_describe(result)}")
        else:
            logger.debug(f"[{method}] Success")
        return result

    async def call_method(self, method: str, *params: Any) -> Any:
        """
        调用方法：方法配置了缓存且只有一个字符串参数时走缓存，其余情况直接调用。
        """
        if self.cache.has(method) and len(params) == 1 and isinstance(params[0], str):
            return await self.cache_call(method, params[0])
        return await self.async_call(method, *params)

    # ---- 订阅 ------------------------------------------------------------

    async def subscribe(self, topic: str, room_id: str) -> str:
        """订阅某个房间的主题，返回订阅 ID。"""
        logger.info(f"[driver] Subscribing to {topic} | {room_id}")
        subscription = await self._require_transport().subscribe(topic, [room_id, True])
        return subscription.id

    async def unsubscribe(self, subscription: Subscription) -> None:
        await self._require_transport().unsubscribe(subscription.id)

    async def unsubscribe_all(self) -> None:
        await self._require_transport().unsubscribe_all()

    async def subscribe_to_messages(self) -> Subscription:
        return await self.messages.subscribe_to_messages()

    async def react_to_messages(self, callback: MessageHandler) -> Subscription:
        return await self.messages.react_to_messages(callback)

    async def respond_to_messages(self, callback: MessageHandler, **options: Any) -> Subscription:
        return await self.responder.respond_to_messages(callback, **options)

    # ---- 房间 ------------------------------------------------------------

    async def get_room_id(self, name: str) -> str:
        """按房间名（或 ID）获取房间 ID。"""
        return await self.cache_call(ROOM_ID_METHOD, name)

    async def get_room_name(self, room_id: str) -> str:
        """按房间 ID 获取房间名。"""
        return await self.cache_call(ROOM_NAME_METHOD, room_id)

    async def get_direct_message_room_id(self, username: str) -> str:
        """获取与指定用户的私聊房间 ID（不存在时服务器会创建）。"""
        result = await self.cache_call(DIRECT_MESSAGE_METHOD, username)
        return result["rid"]

    async def join_room(self, room: str) -> None:
        await self.rooms.join_room(room)

    async def leave_room(self, room: str) -> None:
        await self.rooms.leave_room(room)

    async def join_rooms(self, rooms: list[str]) -> None:
        await self.rooms.join_rooms(rooms)

    # ---- 发送消息 ----------------------------------------------------------

    def prepare_message(self, content: str | dict[str, Any], room_id: str | None = None) -> OutgoingMessage:
        """根据文本或结构化消息构建出站消息，可选地设置目标房间。"""
        message = OutgoingMessage.build(content, self.config.integration_id)
        if room_id:
            message.set_room_id(room_id)
        return message

    async def send_message(self, message: OutgoingMessage | dict[str, Any]) -> dict[str, Any]:
        """发送已设置房间 ID 的消息，返回服务器回执。"""
        payload = message.to_payload() if isinstance(message, OutgoingMessage) else message
        return await self.async_call("sendMessage", payload)

    async def send_to_room_id(
        self, content: str | list[str] | dict[str, Any], room_id: str,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """
        发送一条或多条消息到指定房间 ID。

        content 为列表时逐条发送并返回回执列表，否则返回单个回执。
        """
        if isinstance(content, list):
            return [await self.send_message(self.prepare_message(text, room_id)) for text in content]
        return await self.send_message(self.prepare_message(content, room_id))

    async def send_to_room(
        self, content: str | list[str] | dict[str, Any], room: str,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """按房间名（或 ID）解析后发送。"""
        room_id = await self.get_room_id(room)
        return await self.send_to_room_id(content, room_id)

    async def send_direct_to_user(
        self, content: str | list[str] | dict[str, Any], username: str,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """以私聊方式发送给指定用户。"""
        room_id = await self.get_direct_message_room_id(username)
        return await self.send_to_room_id(content, room_id)

    async def edit_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """编辑已有消息（message 必须包含 _id），用提供的属性替换原有属性。"""
        return await self.async_call("updateMessage", message)

    async def set_reaction(self, emoji: str, message_id: str) -> Any:
        """为消息添加表情回应，如 ":thumbsup:"。"""
        return await self.async_call("setReaction", emoji, message_id)
