"""Ingestion of activity signals and tab lifecycle reports."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any

from tabpulse.api.services.health import now_ms
from tabpulse.api.services.host import InMemoryTabHost, UnknownTabError
from tabpulse.api.services.responses import ResponseHandler
from tabpulse.api.services.tab_state import TabStateStore
from tabpulse.model.models import TabInfo, coerce_heuristics
from tabpulse.ui.notifications import NotificationService
from tabpulse.watchers.logger import logger


class SignalType(str, Enum):
    USER_INPUT = "user-input"
    NETWORK_ACTIVITY = "network-activity"
    MEDIA_PLAYING = "media-playing"
    SOCKET_ACTIVE = "socket-active"
    HEURISTIC_SAMPLE = "heuristic-sample"
    KEEP_ALIVE_REQUEST = "keep-alive-request"
    SUSPEND_NOW_REQUEST = "suspend-now-request"


def _flag(payload: Any, key: str) -> bool:
    if isinstance(payload, dict):
        return bool(payload.get(key))
    return False


class SignalIngestor:
    def __init__(
        self,
        tab_states: TabStateStore,
        responses: ResponseHandler,
        host: InMemoryTabHost,
        alerts: NotificationService,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.tab_states = tab_states
        self.responses = responses
        self.host = host
        self.alerts = alerts
        self.clock = clock

    async def record(
        self, tab_id: int, signal: SignalType, payload: Any = None
    ) -> dict[str, Any]:
        """Apply one signal to the tab's record.

        Malformed payloads are not rejected; missing values fall back to the
        defaults (``False`` flags, healthy heuristics).
        """
        now = self.clock()
        if signal is SignalType.USER_INPUT:
            await self.tab_states.update(tab_id, last_input_at=now)
        elif signal is SignalType.NETWORK_ACTIVITY:
            await self.tab_states.update(tab_id, last_network_at=now)
        elif signal is SignalType.MEDIA_PLAYING:
            await self.tab_states.update(
                tab_id, media_playing=_flag(payload, "playing")
            )
        elif signal is SignalType.SOCKET_ACTIVE:
            await self.tab_states.update(
                tab_id, websocket_active=_flag(payload, "active")
            )
        elif signal is SignalType.HEURISTIC_SAMPLE:
            await self.tab_states.update(
                tab_id, last_heuristics=coerce_heuristics(payload)
            )
        elif signal is SignalType.KEEP_ALIVE_REQUEST:
            expires_at = await self.responses.keep_alive_tab(tab_id)
            return {"expires_at": expires_at}
        elif signal is SignalType.SUSPEND_NOW_REQUEST:
            return {"suspended": await self.responses.suspend_now(tab_id)}
        return {}

    async def at_risk_tabs(self) -> list[dict[str, int]]:
        return [{"id": tab_id} for tab_id in await self.tab_states.at_risk()]

    # --- tab lifecycle --------------------------------------------------

    async def tab_created(self, tab: TabInfo) -> TabInfo:
        """A new tab counts as interacted with at the moment it appears."""
        stored = self.host.upsert(tab)
        await self.tab_states.update(stored.id, last_input_at=self.clock())  # type: ignore[arg-type]
        return stored

    def tab_updated(self, tab: TabInfo) -> TabInfo:
        """Replace the host's view of the tab (url, audible, pinned, ...)."""
        return self.host.upsert(tab)

    async def tab_activated(self, tab_id: int) -> TabInfo:
        tab = self.host.activate(tab_id)
        await self.tab_states.update(tab_id, last_input_at=self.clock())
        return tab

    async def window_focused(self, window_id: int) -> TabInfo | None:
        tab = self.host.active_in_window(window_id)
        if tab is not None and tab.id is not None:
            await self.tab_states.update(tab.id, last_input_at=self.clock())
        return tab

    async def tab_removed(self, tab_id: int) -> bool:
        known = self.host.remove(tab_id)
        await self.tab_states.remove(tab_id)
        self.alerts.clear_for_tab(tab_id)
        if not known:
            logger.info(f"Removal of unknown tab {tab_id}")
        return known

    async def describe(self, tab_id: int) -> dict[str, Any]:
        try:
            tab = await self.host.get(tab_id)
        except UnknownTabError:
            tab = None
        state = await self.tab_states.get(tab_id)
        return {
            "tab": tab,
            "state": state,
        }
