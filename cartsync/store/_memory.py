"""
Memory store — in-process LocalStore.
"""

from __future__ import annotations

import asyncio
import fnmatch

from kungfu import Result, Ok, Error

from cartsync.store._types import StoreError


class MemoryStore:
    """
    In-memory local store.

    Note: Only for single-process use / tests.
    Data does not survive a restart, share one instance to simulate a reload.

    Example:
        store = MemoryStore()
        await store.set("vlanco:cart:guest", "[]")
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._failing_writes = 0

    @property
    def name(self) -> str:
        return "memory"

    async def get(self, key: str) -> Result[str | None, StoreError]:
        async with self._lock:
            return Ok(self._data.get(key))

    async def set(self, key: str, value: str) -> Result[None, StoreError]:
        async with self._lock:
            if self._failing_writes:
                self._failing_writes -= 1
                return Error(StoreError(f"Quota exceeded writing {key}"))
            self._data[key] = value
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._data.pop(key, None) is not None)

    async def delete_pattern(self, pattern: str) -> Result[int, StoreError]:
        async with self._lock:
            keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._data[key]
            return Ok(len(keys))

    # ── test helpers ──────────────────────────────────────────────────────────

    def fail_next_writes(self, count: int) -> None:
        """Make the next `count` writes fail, like a full storage quota."""
        self._failing_writes = count

    def clear(self) -> None:
        """Drop everything, like the browser's "clear site data"."""
        self._data.clear()

    def keys(self) -> list[str]:
        return sorted(self._data)

    def raw(self, key: str) -> str | None:
        return self._data.get(key)


__all__ = ("MemoryStore",)
