"""
传输层基类模块 - 定义驱动依赖的实时传输接口。

驱动本身不关心线路编码，只依赖本模块定义的抽象能力：
- open()/close()：打开、关闭会话，打开成功后触发"连接打开"通知
- login()/logout()：认证
- call()：远程方法调用
- subscribe()/unsubscribe()/unsubscribe_all()：订阅管理
- connected / subscriptions：连接状态与活动订阅表

具体实现见 transport/ddp.py（基于 websockets 的 DDP 协议实现），
测试中使用内存版的假传输层。

【Java 开发者类比】
- Transport 相当于 Java 的 abstract class + interface
- Subscription 相当于一个带回调列表的句柄对象（类似 Future + Listener）
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from loguru import logger

from rocketdriver.utils.helpers import maybe_await

EventHandler = Callable[[dict[str, Any]], Any]


class Subscription:
    """
    订阅句柄。

    属性:
        id: 订阅 ID（由传输层分配）
        name: 订阅的集合/主题名（如 "stream-room-messages"）
        params: 订阅参数
        handlers: 已注册的事件处理函数列表
    """

    def __init__(self, transport: "Transport", id: str, name: str, params: list[Any] | None = None):
        self.transport = transport
        self.id = id
        self.name = name
        self.params = params or []
        self.handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        """注册事件处理函数（同步或协程函数均可）。"""
        self.handlers.append(handler)

    async def dispatch(self, event: dict[str, Any]) -> None:
        """
        将一个事件按注册顺序分发给所有处理函数。

        单个处理函数的异常只记录日志，不会中断订阅或影响其他处理函数。
        """
        for handler in list(self.handlers):
            try:
                await maybe_await(handler(event))
            except Exception as e:
                logger.error(f"[{self.name}] Subscription handler error: {e}")

    async def unsubscribe(self) -> None:
        """通过所属传输层取消该订阅。"""
        await self.transport.unsubscribe(self.id)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, name={self.name!r})"


class Transport(ABC):
    """
    实时传输抽象基类。

    子类在连接建立（握手完成）时必须调用 _notify_open()，
    ConnectionManager 依赖这个通知与连接超时赛跑。

    属性:
        subscriptions: 活动订阅表 {订阅 ID: Subscription}
        _open_listeners: "连接打开"通知的监听函数列表
    """

    def __init__(self):
        self.subscriptions: dict[str, Subscription] = {}
        self._open_listeners: list[Callable[[], None]] = []

    # ---- 连接打开通知 ----------------------------------------------------

    def on_open(self, listener: Callable[[], None]) -> None:
        """注册"连接打开"监听函数（同步调用）。每次打开（包括重连）都会触发。"""
        self._open_listeners.append(listener)

    def remove_open_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._open_listeners:
            self._open_listeners.remove(listener)

    def _notify_open(self) -> None:
        for listener in list(self._open_listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"[transport] Open listener error: {e}")

    # ---- 抽象能力 --------------------------------------------------------

    @property
    @abstractmethod
    def connected(self) -> bool:
        """会话当前是否处于已连接状态。"""

    @abstractmethod
    async def open(self) -> None:
        """
        打开会话。

        实现可以在握手完成前返回，握手完成时调用 _notify_open()；
        打开失败时应抛出异常。
        """

    @abstractmethod
    async def close(self) -> None:
        """关闭会话并释放资源。重复调用应当无害。"""

    @abstractmethod
    async def login(self, credentials: dict[str, Any]) -> dict[str, Any]:
        """
        使用凭证登录。

        返回:
            登录结果字典，至少包含用户 "id"

        异常:
            AuthenticationError: 凭证被拒绝
        """

    @abstractmethod
    async def logout(self) -> None:
        """登出当前用户。"""

    @abstractmethod
    async def call(self, method: str, *params: Any) -> Any:
        """调用远程方法并返回结果。"""

    @abstractmethod
    async def subscribe(
        self,
        name: str,
        params: list[Any],
        on_event: EventHandler | None = None,
    ) -> Subscription:
        """订阅集合/主题，订阅就绪后返回句柄并登记到 subscriptions。"""

    @abstractmethod
    async def unsubscribe(self, id: str) -> None:
        """取消订阅并从 subscriptions 中移除。"""

    async def unsubscribe_all(self) -> None:
        """取消全部活动订阅。"""
        for sub_id in list(self.subscriptions):
            await self.unsubscribe(sub_id)
