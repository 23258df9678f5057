"""Tab State Store: tab id -> TabState, kept under one storage key."""

from __future__ import annotations

import asyncio
from typing import Any

from tabpulse.api.services.storage import SessionStorage
from tabpulse.model.models import TabState

TAB_STATE_KEY = "tabpulse_tab_state"


class TabStateStore:
    """Keyed access to per-tab records.

    Every read-modify-write goes through ``_lock`` so a signal report and a
    scheduler write on the same record cannot overwrite each other.
    """

    def __init__(self, storage: SessionStorage) -> None:
        self.storage = storage
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, dict[str, Any]]:
        return (await self.storage.get(TAB_STATE_KEY)) or {}

    async def get(self, tab_id: int) -> TabState:
        records = await self._load()
        return TabState.from_record(records.get(str(tab_id)))

    async def exists(self, tab_id: int) -> bool:
        return str(tab_id) in await self._load()

    async def update(
        self, tab_id: int, *, create: bool = True, **patch: Any
    ) -> TabState | None:
        """Merge ``patch`` into the tab's record.

        A missing record is created, unless ``create`` is false; then nothing
        is written and ``None`` is returned.
        """
        unknown = set(patch) - set(TabState.__dataclass_fields__)
        if unknown:
            msg = f"unknown TabState fields: {sorted(unknown)}"
            raise ValueError(msg)
        async with self._lock:
            records = await self._load()
            current = records.get(str(tab_id))
            if current is None and not create:
                return None
            record = {**(current or {}), **patch}
            state = TabState.from_record(record)
            records[str(tab_id)] = state.to_record()
            await self.storage.set(TAB_STATE_KEY, records)
        return state

    async def remove(self, tab_id: int) -> None:
        async with self._lock:
            records = await self._load()
            if records.pop(str(tab_id), None) is not None:
                await self.storage.set(TAB_STATE_KEY, records)

    async def all(self) -> dict[int, TabState]:
        records = await self._load()
        return {int(k): TabState.from_record(v) for k, v in records.items()}

    async def at_risk(self) -> list[int]:
        """Ids of tabs that currently carry a warning."""
        states = await self.all()
        return sorted(tab_id for tab_id, s in states.items() if s.warned_at)

    async def reset(self) -> None:
        async with self._lock:
            await self.storage.set(TAB_STATE_KEY, {})
