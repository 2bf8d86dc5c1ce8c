"""
驱动核心模块 - 连接与消息处理管道。

组件（由底向上）：
- cache.py：MethodCache，方法结果缓存
- rooms.py：RoomMembership，已加入房间集合
- connection.py：ConnectionManager，连接/认证生命周期
- stream.py：MessageStream，消息流单例订阅
- responder.py：MessageResponder，有序过滤链 + 读取游标
- driver.py：Driver，组合以上组件的驱动实例
"""

from rocketdriver.driver.cache import MethodCache
from rocketdriver.driver.connection import ConnectionManager, Session, SessionState
from rocketdriver.driver.driver import Driver
from rocketdriver.driver.responder import MessageResponder, ReadCursor
from rocketdriver.driver.rooms import RoomMembership
from rocketdriver.driver.stream import MessageStream

__all__ = [
    "Driver",
    "ConnectionManager",
    "Session",
    "SessionState",
    "MethodCache",
    "MessageResponder",
    "MessageStream",
    "ReadCursor",
    "RoomMembership",
]
