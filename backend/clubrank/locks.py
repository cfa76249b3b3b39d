"""In-process named locks for serializing work on the same match or rating."""

from __future__ import annotations

from asyncio import Lock
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    """Named asyncio locks, created on first use and dropped once idle.

    ``hold`` acquires several names at once in sorted order, so two callers
    asking for overlapping sets can never deadlock each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, *names: str) -> AsyncIterator[None]:
        acquired: list[str] = []
        try:
            for name in sorted(set(names)):
                await self._acquire(name)
                acquired.append(name)
            yield
        finally:
            for name in reversed(acquired):
                self._locks[name].release()
                self._drop_user(name)

    async def _acquire(self, name: str) -> None:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = Lock()
        self._users[name] = self._users.get(name, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._drop_user(name)
            raise

    def _drop_user(self, name: str) -> None:
        remaining = self._users[name] - 1
        if remaining:
            self._users[name] = remaining
            return
        del self._users[name]
        del self._locks[name]
