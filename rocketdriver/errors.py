"""
驱动异常定义模块。

所有驱动抛出的异常都继承自 DriverError，调用方可以只捕获这一个基类。

错误分类：
- ConnectionTimeoutError：连接超时（只影响当前这一次连接尝试）
- AuthenticationError：服务器拒绝登录凭证
- MalformedEventError：消息流事件缺少 message/meta（报告给回调，不会关闭订阅）
- MethodCallError：服务器端方法调用返回错误
- NotConnectedError：在没有可用连接时发起请求
- RestError：REST 接口请求失败

策略过滤掉的消息不是错误，不会出现在这里。
"""

from typing import Any


class DriverError(Exception):
    """驱动异常基类。"""


class ConnectionTimeoutError(DriverError):
    """连接在超时时间内没有建立。"""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Socket connection timeout ({timeout_ms}ms)")
        self.timeout_ms = timeout_ms


class AuthenticationError(DriverError):
    """登录凭证被服务器拒绝。"""


class MalformedEventError(DriverError):
    """消息流事件结构不完整（缺少 message 或 meta）。"""


class NotConnectedError(DriverError):
    """传输层未连接或连接已关闭。"""


class MethodCallError(DriverError):
    """
    服务器方法调用失败。

    属性:
        method: 调用的方法名
        error: 服务器返回的错误对象（DDP 中为 dict，包含 error/reason/message）
    """

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        reason = error
        if isinstance(error, dict):
            reason = error.get("reason") or error.get("message") or error.get("error")
        super().__init__(f"[{method}] {reason}")


class RestError(DriverError):
    """
    REST 请求失败。

    属性:
        status_code: HTTP 状态码（无响应时为 None）
        data: 服务器返回的 JSON 数据（无法解析时为原始文本）
    """

    def __init__(self, message: str, status_code: int | None = None, data: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.data = data
