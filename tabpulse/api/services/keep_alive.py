from __future__ import annotations

import asyncio

from tabpulse.api.services.storage import SessionStorage

KEEP_ALIVE_KEY = "tabpulse_keepalive"


class KeepAliveRegistry:
    """tab id -> expiry timestamp (ms).

    Expired entries are left in place; they are compared against ``now`` on
    every lookup.
    """

    def __init__(self, storage: SessionStorage) -> None:
        self.storage = storage
        self._lock = asyncio.Lock()

    async def set(self, tab_id: int, expires_at: int) -> None:
        async with self._lock:
            entries = (await self.storage.get(KEEP_ALIVE_KEY)) or {}
            entries[str(tab_id)] = int(expires_at)
            await self.storage.set(KEEP_ALIVE_KEY, entries)

    async def expires_at(self, tab_id: int) -> int | None:
        entries = (await self.storage.get(KEEP_ALIVE_KEY)) or {}
        return entries.get(str(tab_id))

    async def is_kept_alive(self, tab_id: int, now: int) -> bool:
        expires = await self.expires_at(tab_id)
        return bool(expires and expires > now)
