"""
方法结果缓存模块 - 为频繁重复的只读方法调用提供有界、限时的缓存。

典型的缓存方法：
- getRoomIdByNameOrId：房间名 → 房间 ID
- getRoomNameById：房间 ID → 房间名
- createDirectMessage：用户名 → 私聊房间（不存在时由服务器创建）

每个方法名对应一个独立的 cachetools.TTLCache：
- 超过 max_age 的条目一律失效（无论是否被访问过）
- 条目数超过 max_entries 时淘汰最久未使用（LRU）的条目

只有"唯一参数是字符串"的调用才走缓存（该字符串即缓存键），
调用失败时异常原样抛出，不会写入缓存。

【Java 开发者类比】
- MethodCache 类似于按方法名分区的 Guava Cache（expireAfterWrite + maximumSize）
"""

import time
from typing import Any, Awaitable, Callable

from cachetools import TTLCache
from loguru import logger

Caller = Callable[..., Awaitable[Any]]


class MethodCache:
    """
    按方法名分区的结果缓存。

    属性:
        _caller: 实际执行方法调用的异步函数，签名为 caller(method, *params)
        _caches: {方法名: TTLCache}
        _timer: TTLCache 使用的时钟函数（返回秒），测试中可替换为可控时钟
    """

    def __init__(self, caller: Caller | None = None, timer: Callable[[], float] = time.monotonic):
        self._caller = caller
        self._caches: dict[str, TTLCache] = {}
        self._timer = timer

    def use(self, caller: Caller) -> None:
        """绑定实际执行调用的函数（每次建立新的传输会话时重新绑定）。"""
        self._caller = caller

    def create(self, method: str, max_entries: int, max_age_ms: int) -> None:
        """
        为指定方法创建缓存。已存在的同名缓存会被替换（原有条目丢弃）。

        参数:
            method: 服务器方法名
            max_entries: 最大条目数
            max_age_ms: 条目有效期（毫秒）
        """
        self._caches[method] = TTLCache(
            maxsize=max(1, max_entries),
            ttl=max(0, max_age_ms) / 1000.0,
            timer=self._timer,
        )

    def has(self, method: str) -> bool:
        """该方法是否配置了缓存。"""
        return method in self._caches

    def get(self, method: str, key: str) -> Any | None:
        """读取未过期的缓存值（不触发调用）。不存在时返回 None。"""
        cache = self._caches.get(method)
        if cache is None:
            return None
        return cache.get(key)

    async def call(self, method: str, key: str) -> Any:
        """
        返回缓存结果；缓存未命中时执行调用、写入缓存并返回结果。

        异常:
            KeyError: 该方法未配置缓存
            RuntimeError: 尚未绑定调用函数
            其他: 实际调用抛出的异常（不写入缓存）
        """
        cache = self._caches.get(method)
        if cache is None:
            raise KeyError(f"No cache configured for method {method}")
        try:
            result = cache[key]
        except KeyError:
            pass
        else:
            logger.debug(f"[cache] Hit {method}({key})")
            return result

        if self._caller is None:
            raise RuntimeError("Method cache has no caller, connect first")
        result = await self._caller(method, key)
        cache[key] = result
        return result

    def reset(self, method: str | None = None, key: str | None = None) -> None:
        """
        清除缓存。

        - 不传参数：清空所有方法的缓存条目
        - 只传 method：清空该方法的全部条目
        - 同时传 method 和 key：只删除一个条目
        """
        if method is None:
            for cache in self._caches.values():
                cache.clear()
            return
        cache = self._caches.get(method)
        if cache is None:
            return
        if key is None:
            cache.clear()
        else:
            cache.pop(key, None)

    def size(self, method: str) -> int:
        """该方法当前的有效条目数。"""
        cache = self._caches.get(method)
        if cache is None:
            return 0
        cache.expire()
        return len(cache)
