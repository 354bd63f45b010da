"""
Per-user write serialization.

All mutations of one user's schedule run one at a time so the overlap check
always sees a consistent snapshot. Reads never take the lock.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class UserLockRegistry:
    """Lazily created asyncio.Lock per user id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks[user_id]
        async with lock:
            yield

    def is_locked(self, user_id: str) -> bool:
        return user_id in self._locks and self._locks[user_id].locked()
