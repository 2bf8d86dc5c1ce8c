"""
消息事件类型定义模块 - 定义驱动中流转的消息数据结构。

本模块定义了以下数据类：
- MessageUser：消息发送者
- Message：从消息流收到的一条消息（入站）
- MessageMeta：消息附带的房间元数据（房间类型、是否为参与者等）
- OutgoingMessage：准备发送到服务器的消息（出站）

入站数据类都保留了原始字典（raw），应用回调需要未建模的字段时可直接读取。

【房间类型】
- "d"：私聊（Direct Message）
- "l"：Livechat 访客会话
- "c"：公共频道
- "p"：私有群组
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rocketdriver.errors import MalformedEventError
from rocketdriver.utils.helpers import parse_date

ROOM_TYPE_DIRECT = "d"
ROOM_TYPE_LIVECHAT = "l"


@dataclass
class MessageUser:
    """消息发送者。"""

    id: str
    username: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "MessageUser | None":
        if not isinstance(data, dict) or not data.get("_id"):
            return None
        return cls(
            id=str(data["_id"]),
            username=str(data.get("username") or ""),
            name=str(data.get("name") or ""),
        )


@dataclass
class Message:
    """
    入站消息 - 消息流中的一条消息事件。

    属性:
        id: 消息唯一 ID（服务端 _id）
        room_id: 所属房间 ID（rid）
        text: 消息正文（msg）
        user: 发送者（可能缺失，如系统消息）
        ts: 消息时间戳（缺失时为 None，由过滤管道按"现在"处理）
        edited_at: 编辑时间（未编辑时为 None）
        raw: 原始消息字典
    """

    id: str
    room_id: str = ""
    text: str = ""
    user: MessageUser | None = None
    ts: datetime | None = None
    edited_at: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_edited(self) -> bool:
        """消息是否被编辑过（以 editedAt 字段是否存在为准）。"""
        return "editedAt" in self.raw or self.edited_at is not None

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        """
        从消息流载荷解析消息。

        异常:
            MalformedEventError: 载荷不是字典或缺少 _id
        """
        if not isinstance(data, dict) or not data.get("_id"):
            raise MalformedEventError("Message handler fired on event without message or meta data")
        return cls(
            id=str(data["_id"]),
            room_id=str(data.get("rid") or ""),
            text=str(data.get("msg") or ""),
            user=MessageUser.from_dict(data.get("u")),
            ts=parse_date(data.get("ts")),
            edited_at=parse_date(data.get("editedAt")),
            raw=data,
        )


@dataclass
class MessageMeta:
    """
    消息元数据 - 描述消息所在房间。

    属性:
        room_type: 房间类型标记（d/l/c/p）
        room_participant: 当前会话用户是否为该房间参与者
        room_name: 房间名（私聊房间通常没有）
    """

    room_type: str
    room_participant: bool = False
    room_name: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_direct(self) -> bool:
        return self.room_type == ROOM_TYPE_DIRECT

    @property
    def is_livechat(self) -> bool:
        return self.room_type == ROOM_TYPE_LIVECHAT

    @classmethod
    def from_dict(cls, data: Any) -> "MessageMeta":
        """
        从消息流载荷解析元数据。

        异常:
            MalformedEventError: 载荷不是字典或缺少 roomType
        """
        if not isinstance(data, dict) or not data.get("roomType"):
            raise MalformedEventError("Message handler fired on event without message or meta data")
        return cls(
            room_type=str(data["roomType"]),
            room_participant=bool(data.get("roomParticipant")),
            room_name=str(data.get("roomName") or ""),
            raw=data,
        )


@dataclass
class OutgoingMessage:
    """
    出站消息 - 准备通过 sendMessage 方法发送的消息。

    属性:
        text: 消息文本（msg）
        room_id: 目标房间 ID（rid），发送前必须设置
        integration_id: 写入 bot.i 的集成标识，用于服务端区分消息来源
        extra: 其他消息属性（如 attachments、alias、emoji 等），原样合并进载荷
    """

    text: str = ""
    room_id: str | None = None
    integration_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, content: "str | dict[str, Any]", integration_id: str) -> "OutgoingMessage":
        """从文本或结构化消息字典构建出站消息。字典中的 msg/rid 会被提取到对应字段。"""
        if isinstance(content, str):
            return cls(text=content, integration_id=integration_id)
        extra = dict(content)
        return cls(
            text=str(extra.pop("msg", "") or ""),
            room_id=extra.pop("rid", None),
            integration_id=integration_id,
            extra=extra,
        )

    def set_room_id(self, room_id: str) -> "OutgoingMessage":
        self.room_id = room_id
        return self

    def to_payload(self) -> dict[str, Any]:
        """转换为 sendMessage 方法所需的字典载荷。"""
        payload: dict[str, Any] = {**self.extra, "msg": self.text}
        if self.room_id:
            payload["rid"] = self.room_id
        payload["bot"] = {**payload.get("bot", {}), "i": self.integration_id}
        return payload
