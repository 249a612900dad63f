# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process keyed locks.

Serializes coroutines that touch the same logical key (a student id, a grade
id) while letting unrelated keys proceed concurrently. Locks are created on
first use and dropped once nobody holds or waits for them.

Example:
    locks = KeyedLock()

    async with locks.hold("student:abc", "grade:g1"):
        ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Registry of asyncio locks addressed by string keys."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for a single key."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks for several keys.

        Keys are acquired in sorted order so two callers asking for the same
        keys in a different order cannot deadlock.
        """
        ordered = sorted(set(keys))
        async with _chain(self, ordered):
            yield


@asynccontextmanager
async def _chain(locks: KeyedLock, keys: list[str]) -> AsyncIterator[None]:
    if not keys:
        yield
        return
    async with locks.acquire(keys[0]):
        async with _chain(locks, keys[1:]):
            yield
