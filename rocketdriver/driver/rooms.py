"""
房间成员关系模块 - 记录本进程内当前会话已加入的房间。

已加入的房间 ID 保存在集合中（无重复、无顺序），只由 join/leave 操作修改，
不跨进程重启持久化。消息过滤管道依赖它判断公共房间消息是否相关。

同一房间的加入/离开通过按房间 ID 区分的 asyncio.Lock 串行化：
并发两次加入同一房间时，第二次会等第一次完成，看到已加入后直接返回，
只会向服务器发起一次 joinRoom 调用。
"""

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger


class RoomMembership:
    """
    已加入房间的集合。

    参数:
        resolve: 房间名或 ID → 房间 ID 的异步解析函数（通常走方法缓存）
        call: 执行服务器方法的异步函数，签名为 call(method, *params)
    """

    def __init__(
        self,
        resolve: Callable[[str], Awaitable[str]],
        call: Callable[..., Awaitable[Any]],
    ):
        self._resolve = resolve
        self._call = call
        self.joined: set[str] = set()
        self._room_locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self.joined

    def __len__(self) -> int:
        return len(self.joined)

    async def join_room(self, room: str) -> None:
        """加入房间（按名称或 ID）。已加入时记录日志并直接返回。"""
        room_id = await self._resolve(room)
        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        async with lock:
            if room_id in self.joined:
                logger.error(f"[driver] Join room failed, already joined {room}")
                return
            await self._call("joinRoom", room_id)
            self.joined.add(room_id)
            logger.info(f"[driver] Joined room {room} ({room_id})")

    async def leave_room(self, room: str) -> None:
        """离开房间（按名称或 ID）。未加入时记录日志并直接返回。"""
        room_id = await self._resolve(room)
        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        async with lock:
            if room_id not in self.joined:
                logger.error(f"[driver] Leave room failed, not joined {room}")
                return
            await self._call("leaveRoom", room_id)
            self.joined.discard(room_id)
            logger.info(f"[driver] Left room {room} ({room_id})")

    async def join_rooms(self, rooms: list[str]) -> None:
        """并发加入多个房间。任一加入失败即抛出该异常（不汇总部分成功的结果）。"""
        await asyncio.gather(*(self.join_room(room) for room in rooms))

    def clear(self) -> None:
        self.joined.clear()
