"""
消息与事件模块 - 定义驱动内流转的数据结构和生命周期广播。

消息流向：
  服务器消息流 → Message/MessageMeta → 过滤管道 → 应用回调
  应用 → OutgoingMessage → sendMessage 方法 → 服务器
"""

from rocketdriver.bus.events import Message, MessageMeta, MessageUser, OutgoingMessage
from rocketdriver.bus.queue import LifecycleEvents

__all__ = ["Message", "MessageMeta", "MessageUser", "OutgoingMessage", "LifecycleEvents"]
