"""
消息流订阅模块 - 管理当前用户私有消息流的单一订阅，并把事件分发给多个处理函数。

服务器通过 "stream-room-messages" 集合推送与当前用户相关的所有消息，
订阅参数固定为 ["__my_messages__", True]。同一时刻最多只保留一个这样的订阅：

- subscribe_to_messages() 是幂等的"获取或创建"：已有有效订阅时直接返回，
  并发调用共享同一个正在进行的创建过程
- 订阅是否仍然有效，以它是否还登记在当前传输的活动订阅表中为准，
  因此无论是调用了 subscription.unsubscribe()、unsubscribe_all() 还是重新连接，
  下一次调用都会创建新的订阅

事件载荷结构（DDP changed 消息）：
    {"collection": "stream-room-messages", "fields": {"eventName": ..., "args": [message, meta]}}
"""

import asyncio
import json
from typing import Any, Callable

from loguru import logger

from rocketdriver.bus.events import Message, MessageMeta
from rocketdriver.errors import MalformedEventError, NotConnectedError
from rocketdriver.transport.base import Subscription, Transport
from rocketdriver.utils.helpers import maybe_await

MESSAGE_COLLECTION = "stream-room-messages"
MESSAGE_STREAM = "__my_messages__"

# handler(err, message, meta)
MessageHandler = Callable[[Exception | None, Message | None, MessageMeta | None], Any]


class MessageStream:
    """
    消息流订阅的单例持有者。

    参数:
        get_transport: 返回当前传输实例的函数（未连接时返回 None）

    属性:
        _subscription: 当前持有的订阅（可能已失效，使用前需校验）
        _pending: 正在进行中的订阅创建任务
    """

    def __init__(self, get_transport: Callable[[], Transport | None]):
        self._get_transport = get_transport
        self._subscription: Subscription | None = None
        self._pending: asyncio.Task | None = None

    @property
    def subscription(self) -> Subscription | None:
        """当前有效的消息流订阅，没有时为 None。"""
        subscription = self._subscription
        transport = self._get_transport()
        if subscription is None or transport is None:
            return None
        if subscription.transport is not transport or transport.subscriptions.get(subscription.id) is not subscription:
            return None
        return subscription

    async def subscribe_to_messages(self) -> Subscription:
        """获取或创建消息流订阅。"""
        subscription = self.subscription
        if subscription is not None:
            return subscription
        self._subscription = None
        if self._pending is None or self._pending.done():
            self._pending = asyncio.get_running_loop().create_task(self._open_stream())
        return await asyncio.shield(self._pending)

    async def _open_stream(self) -> Subscription:
        transport = self._get_transport()
        if transport is None:
            raise NotConnectedError("Cannot subscribe to messages, not connected")
        subscription = await transport.subscribe(
            MESSAGE_COLLECTION,
            [MESSAGE_STREAM, True],
            lambda data: logger.debug(f"[driver] subscription event {json.dumps(data, default=str)}"),
        )
        self._subscription = subscription
        return subscription

    async def unsubscribe(self) -> None:
        """取消当前的消息流订阅（没有时什么也不做）。"""
        subscription = self.subscription
        self._subscription = None
        if subscription is not None:
            await subscription.unsubscribe()

    async def react_to_messages(self, handler: MessageHandler) -> Subscription:
        """
        为消息流注册底层处理函数（必要时先订阅）。

        处理函数采用错误优先约定 handler(err, message, meta)：
        - 事件缺少 message/meta，或 message 没有 _id、meta 没有 roomType 时，
          以 MalformedEventError 调用 handler，订阅不受影响
        - 解析过程中的其他异常记录日志后同样作为错误交给 handler
        """

        async def on_event(event: dict[str, Any]) -> None:
            try:
                message, meta = self._parse_event(event)
            except Exception as e:
                if not isinstance(e, MalformedEventError):
                    logger.error(f"[driver] Message handler err: {e}")
                await maybe_await(handler(e, None, None))
                return
            await maybe_await(handler(None, message, meta))

        subscription = await self.subscribe_to_messages()
        subscription.on_event(on_event)
        logger.info(f"[driver] Added event handler for {subscription.name} subscription")
        return subscription

    @staticmethod
    def _parse_event(event: dict[str, Any]) -> tuple[Message, MessageMeta]:
        fields = event.get("fields") if isinstance(event, dict) else None
        args = fields.get("args") if isinstance(fields, dict) else None
        if not isinstance(args, list) or len(args) < 2:
            raise MalformedEventError("Message handler fired on event without message or meta data")
        return Message.from_dict(args[0]), MessageMeta.from_dict(args[1])
