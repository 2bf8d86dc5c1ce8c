"""
工具函数集合 - rocketdriver 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path
- 地址处理：strip_protocol, ensure_protocol
- 时间工具：parse_date, utcnow
- 回调工具：maybe_await
"""

import inspect
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# 匹配 "http://"、"wss://" 或 "//" 形式的协议前缀
_PROTOCOL_RE = re.compile(r"^(\w+:)?//")


def ensure_dir(path: Path) -> Path:
    """确保目录存在，不存在则递归创建。返回原路径。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 rocketdriver 数据目录（~/.rocketdriver）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".rocketdriver")


def strip_protocol(host: str) -> str:
    """
    去除地址中的协议前缀。

    示例:
        "https://chat.example.com" → "chat.example.com"
        "//localhost:3000" → "localhost:3000"
        "localhost:3000" → "localhost:3000"
    """
    return _PROTOCOL_RE.sub("", host.strip())


def ensure_protocol(host: str, use_ssl: bool = False) -> str:
    """为没有协议前缀的地址补上 http(s)://，已有 http 前缀的地址原样返回。"""
    host = host.strip()
    if host.startswith("http"):
        return host.rstrip("/")
    scheme = "https" if use_ssl else "http"
    return f"{scheme}://{strip_protocol(host)}".rstrip("/")


def utcnow() -> datetime:
    """获取当前 UTC 时间（带时区）。"""
    return datetime.now(timezone.utc)


def parse_date(value: Any) -> datetime | None:
    """
    将服务端时间字段解析为带时区的 datetime。

    支持的格式：
    - EJSON 日期：{"$date": 1700000000000}（毫秒）
    - 数字：epoch 毫秒
    - ISO 8601 字符串（"Z" 结尾也可）
    - datetime 对象（无时区时视为 UTC）

    无法解析时返回 None。
    """
    if isinstance(value, dict):
        value = value.get("$date")
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


async def maybe_await(value: Any) -> Any:
    """如果 value 是可等待对象则等待其结果，否则原样返回。用于同时支持同步和异步回调。"""
    if inspect.isawaitable(value):
        return await value
    return value
