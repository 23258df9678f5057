"""Tab host collaborator: enumerates tabs and performs the actual discard."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from tabpulse.model.models import DiscardOutcome, TabInfo


class UnknownTabError(LookupError):
    """The host does not know the requested tab."""


class TabHost(ABC):
    @abstractmethod
    async def query(self) -> list[TabInfo]:
        """Return every non-discarded, fully loaded tab."""

    @abstractmethod
    async def get(self, tab_id: int) -> TabInfo:
        """Return the tab or raise :class:`UnknownTabError`."""

    @abstractmethod
    async def discard(self, tab_id: int) -> DiscardOutcome:
        """Ask the host to deactivate the tab. Must not raise."""


class InMemoryTabHost(TabHost):
    """Host whose tab list is pushed to it through the API."""

    def __init__(self) -> None:
        self._tabs: dict[int, TabInfo] = {}

    async def query(self) -> list[TabInfo]:
        return [
            replace(t)
            for t in self._tabs.values()
            if not t.discarded and t.status == "complete"
        ]

    async def get(self, tab_id: int) -> TabInfo:
        tab = self._tabs.get(tab_id)
        if tab is None:
            msg = f"tab {tab_id} not found"
            raise UnknownTabError(msg)
        return replace(tab)

    async def discard(self, tab_id: int) -> DiscardOutcome:
        tab = self._tabs.get(tab_id)
        if tab is None:
            return DiscardOutcome(tab_id, ok=False, error="tab not found")
        if tab.active:
            # the focused tab cannot be discarded
            return DiscardOutcome(tab_id, ok=False, error="tab is active")
        tab.discarded = True
        return DiscardOutcome(tab_id, ok=True)

    def upsert(self, tab: TabInfo) -> TabInfo:
        if tab.id is None:
            msg = "tab id is required"
            raise ValueError(msg)
        self._tabs[tab.id] = replace(tab)
        if tab.active:
            self._deactivate_others(tab.id, tab.window_id)
        return replace(tab)

    def remove(self, tab_id: int) -> bool:
        return self._tabs.pop(tab_id, None) is not None

    def activate(self, tab_id: int) -> TabInfo:
        """Focus the tab; a discarded tab is reloaded by focusing it."""
        tab = self._tabs.get(tab_id)
        if tab is None:
            msg = f"tab {tab_id} not found"
            raise UnknownTabError(msg)
        tab.active = True
        tab.discarded = False
        self._deactivate_others(tab_id, tab.window_id)
        return replace(tab)

    def active_in_window(self, window_id: int) -> TabInfo | None:
        for tab in self._tabs.values():
            if tab.window_id == window_id and tab.active:
                return replace(tab)
        return None

    def _deactivate_others(self, tab_id: int, window_id: int) -> None:
        for other in self._tabs.values():
            if other.id != tab_id and other.window_id == window_id:
                other.active = False
