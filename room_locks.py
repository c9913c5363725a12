import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class RoomLocks:
    """One asyncio.Lock per room code, created on demand and dropped once unused."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, code: str):
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        self._users[code] = self._users.get(code, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[code] -= 1
            if not self._users[code]:
                del self._users[code]
                del self._locks[code]

    def locked(self, code: str) -> bool:
        lock = self._locks.get(code)
        return lock is not None and lock.locked()

    def __len__(self):
        return len(self._locks)
