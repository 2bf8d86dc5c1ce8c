"""
消息响应模块 - 在消息流之上应用有序的过滤链，只把应用关心的消息交给回调。

过滤链按顺序执行，第一个命中的排除条件即丢弃事件（不调用回调）：
1. 上游结构错误 → 直接以错误调用回调
2. 当前登录用户自己发送的消息（避免自我回复循环）
3. 私聊消息，除非配置了 dm
4. Livechat 消息，除非配置了 livechat
5. 未加入且不是参与者的公共房间消息，除非配置了 all_public
6. 被编辑过的消息，除非配置了 edited
7. 时间戳不晚于读取游标的消息（重复/乱序）
8. 其余消息：推进游标并调用 callback(None, message, meta)

游标检查放在所有策略过滤之后：因策略被丢弃的消息不会推进游标，
也就不会挡住其他房间里时间稍早但符合条件的消息。
"""

from datetime import datetime
from typing import Callable

from loguru import logger

from rocketdriver.bus.events import Message, MessageMeta
from rocketdriver.config.schema import DriverConfig
from rocketdriver.driver.rooms import RoomMembership
from rocketdriver.driver.stream import MessageHandler, MessageStream
from rocketdriver.transport.base import Subscription
from rocketdriver.utils.helpers import maybe_await, utcnow

# 过滤条件：返回 True 表示丢弃该消息
MessageFilter = Callable[[Message, MessageMeta], bool]


class ReadCursor:
    """
    单调递增的读取游标。

    记录最近一条被接受消息的时间戳，只能向前移动；
    时间戳不晚于游标的消息视为重复或过期。
    """

    def __init__(self, start: datetime | None = None):
        self.value: datetime = start or utcnow()

    def advance(self, ts: datetime) -> bool:
        """ts 晚于游标时推进游标并返回 True，否则返回 False（游标不变）。"""
        if ts <= self.value:
            return False
        self.value = ts
        return True


class MessageResponder:
    """
    消息过滤管道。

    参数:
        config: 驱动配置（过滤选项默认值）
        stream: 消息流订阅持有者
        rooms: 已加入房间集合
        get_user_id: 返回当前登录用户 ID 的函数

    属性:
        cursor: 读取游标（开始响应之前为 None）
    """

    def __init__(
        self,
        config: DriverConfig,
        stream: MessageStream,
        rooms: RoomMembership,
        get_user_id: Callable[[], str | None],
    ):
        self.config = config
        self.stream = stream
        self.rooms = rooms
        self._get_user_id = get_user_id
        self.cursor: ReadCursor | None = None

    @property
    def last_read_time(self) -> datetime | None:
        return self.cursor.value if self.cursor else None

    async def respond_to_messages(self, callback: MessageHandler, **options) -> Subscription:
        """
        按配置过滤消息流并调用 callback(err, message, meta)。

        尚未加入任何房间且配置了 rooms（并且不是 all_public 模式）时，先加入这些房间；
        加入失败只记录日志，消息流照常启动。游标在处理第一条消息之前初始化为"现在"。

        参数:
            callback: 错误优先回调（同步或协程函数）
            **options: 覆盖配置的过滤选项（dm、livechat、edited、all_public、rooms）
        """
        config = self.config.merged(**options)

        if not config.all_public and len(self.rooms) == 0 and config.rooms:
            try:
                await self.rooms.join_rooms(config.rooms)
            except Exception as e:
                logger.error(f"[driver] Failed to join configured rooms ({', '.join(config.rooms)}): {e}")

        self.cursor = ReadCursor()
        filters = self.build_filters(config)

        async def handler(err: Exception | None, message: Message | None, meta: MessageMeta | None) -> None:
            if err is not None:
                logger.error(f"[driver] Unable to receive: {err}")
                await maybe_await(callback(err, None, None))
                return
            if message is None or meta is None:
                logger.error("[driver] Message or meta undefined")
                return
            if self.accept(message, meta, filters):
                await maybe_await(callback(None, message, meta))

        return await self.stream.react_to_messages(handler)

    def build_filters(self, config: DriverConfig) -> list[tuple[str, MessageFilter]]:
        """按顺序构建策略过滤链（不含游标检查）。"""

        def own_message(message: Message, meta: MessageMeta) -> bool:
            user_id = self._get_user_id()
            return bool(user_id) and message.user is not None and message.user.id == user_id

        def direct_message(message: Message, meta: MessageMeta) -> bool:
            return meta.is_direct and not config.dm

        def livechat_message(message: Message, meta: MessageMeta) -> bool:
            return meta.is_livechat and not config.livechat

        def unjoined_room(message: Message, meta: MessageMeta) -> bool:
            if config.all_public or meta.is_direct or meta.room_participant:
                return False
            return message.room_id not in self.rooms

        def edited_message(message: Message, meta: MessageMeta) -> bool:
            return message.is_edited and not config.edited

        return [
            ("own message", own_message),
            ("direct message", direct_message),
            ("livechat message", livechat_message),
            ("room not joined", unjoined_room),
            ("edited message", edited_message),
        ]

    def accept(self, message: Message, meta: MessageMeta,
               filters: list[tuple[str, MessageFilter]]) -> bool:
        """依次应用过滤链和游标检查，通过时推进游标并返回 True。"""
        for reason, should_drop in filters:
            if should_drop(message, meta):
                logger.debug(f"[driver] Ignoring message {message.id}: {reason}")
                return False

        if self.cursor is None:
            self.cursor = ReadCursor()
        if not self.cursor.advance(message.ts or utcnow()):
            logger.debug(f"[driver] Ignoring message {message.id}: not newer than last read")
            return False

        username = message.user.username if message.user else "unknown"
        logger.info(f"[driver] Message {message.id} from {username}")
        return True
