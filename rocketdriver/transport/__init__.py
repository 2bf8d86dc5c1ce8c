"""
传输层模块 - 驱动与服务器之间的实时会话。

- base.py：Transport 抽象基类与 Subscription 句柄
- ddp.py：基于 websockets 的 DDP 协议实现
"""

from rocketdriver.transport.base import Subscription, Transport
from rocketdriver.transport.ddp import DDPTransport

__all__ = ["Subscription", "Transport", "DDPTransport"]
