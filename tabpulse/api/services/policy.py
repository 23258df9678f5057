from __future__ import annotations

import asyncio
from typing import Any

from tabpulse.api.services.storage import SessionStorage
from tabpulse.config import Policy

SETTINGS_KEY = "tabpulse_settings"


class PolicyStore:
    """Stored settings merged over the defaults of :class:`Policy`."""

    def __init__(self, storage: SessionStorage) -> None:
        self.storage = storage
        self._lock = asyncio.Lock()

    async def get(self) -> Policy:
        stored = (await self.storage.get(SETTINGS_KEY)) or {}
        return Policy().merged(stored)

    async def update(self, patch: dict[str, Any]) -> Policy:
        """Validate and persist a partial update; returns the new policy.

        Raises ``pydantic.ValidationError`` when the patch is invalid, in which
        case nothing is written.
        """
        async with self._lock:
            current = await self.get()
            new = current.merged(patch)
            await self.storage.set(SETTINGS_KEY, new.model_dump(mode="json"))
        return new

    async def toggle_enabled(self) -> Policy:
        async with self._lock:
            current = await self.get()
            new = current.merged({"enabled": not current.enabled})
            await self.storage.set(SETTINGS_KEY, new.model_dump(mode="json"))
        return new
