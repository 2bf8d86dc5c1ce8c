"""
生命周期事件总线 - 向应用广播连接状态变化。

一次性的连接完成由 connect() 返回的协程表达；
而"已连接"这类可能重复发生的通知（如传输层断线重连后再次打开）
则通过本模块的 LifecycleEvents 广播给任意多个订阅者。

事件名：
- "connected"：连接建立完成（包括后续的重新打开）
- "disconnected"：主动断开连接后

【Java 开发者类比】
- subscribe/publish 类似于 Spring 的 @EventListener + ApplicationEventPublisher
"""

import asyncio
from typing import Any, Callable

from loguru import logger

from rocketdriver.utils.helpers import maybe_await


class LifecycleEvents:
    """
    异步事件广播器。

    订阅者可以是同步函数也可以是协程函数；
    单个订阅者抛出的异常只记录日志，不影响其他订阅者。

    属性:
        _subscribers: 订阅者字典 {事件名: [回调函数列表]}
        _tasks: 通过 emit() 调度、尚未完成的后台广播任务
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable[..., Any]]] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event: str, callback: Callable[..., Any]) -> None:
        """订阅指定事件。同一事件可以注册多个回调。"""
        self._subscribers.setdefault(event, []).append(callback)

    def unsubscribe(self, event: str, callback: Callable[..., Any]) -> None:
        """取消订阅。回调未注册时静默忽略。"""
        callbacks = self._subscribers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def publish(self, event: str, *args: Any) -> None:
        """依次调用该事件的所有订阅者。"""
        for callback in list(self._subscribers.get(event, [])):
            try:
                await maybe_await(callback(*args))
            except Exception as e:
                logger.error(f"Error dispatching '{event}' event: {e}")

    def emit(self, event: str, *args: Any) -> None:
        """
        在同步上下文中发布事件（调度为后台任务）。

        传输层的"连接打开"通知是同步回调，无法直接 await，
        因此在这里创建任务并持有引用直到其完成。
        """
        task = asyncio.get_running_loop().create_task(self.publish(event, *args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
