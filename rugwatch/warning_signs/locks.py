"""
Per-entity mutation locks.

The monitoring tick and API-triggered updates both read-modify-write the
same warning document; every mutation holds the warning's lock for the whole
load, merge, score and save sequence so no evidence is silently dropped.

Entries are reference-counted: a lock exists only while some task holds or
waits for it, so the registry stays bounded by in-flight mutations rather
than by every id ever touched.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class EntityLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, entity_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        self._users[entity_id] = self._users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[entity_id] -= 1
            if self._users[entity_id] == 0:
                del self._users[entity_id]
                del self._locks[entity_id]

    def __len__(self) -> int:
        return len(self._locks)
