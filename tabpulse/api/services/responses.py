"""Routing of manual overrides and alert button presses."""

from __future__ import annotations

from collections.abc import Callable

from tabpulse.api.services.health import minutes, now_ms
from tabpulse.api.services.host import TabHost, UnknownTabError
from tabpulse.api.services.keep_alive import KeepAliveRegistry
from tabpulse.api.services.policy import PolicyStore
from tabpulse.api.services.scheduler import Scheduler
from tabpulse.api.services.tab_state import TabStateStore
from tabpulse.ui.notifications import NotificationService, tab_id_from_alert
from tabpulse.watchers.logger import logger

KEEP_ALIVE_BUTTON = 0
SUSPEND_NOW_BUTTON = 1


class ResponseHandler:
    """Turns keep-alive / suspend-now requests into state transitions."""

    def __init__(
        self,
        scheduler: Scheduler,
        tab_states: TabStateStore,
        keep_alive: KeepAliveRegistry,
        policy_store: PolicyStore,
        host: TabHost,
        alerts: NotificationService,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.scheduler = scheduler
        self.tab_states = tab_states
        self.keep_alive = keep_alive
        self.policy_store = policy_store
        self.host = host
        self.alerts = alerts
        self.clock = clock

    async def keep_alive_tab(self, tab_id: int, *, from_alert: bool = False) -> int:
        """Exempt the tab for ``keep_alive_minutes``; returns the expiry (ms)."""
        policy = await self.policy_store.get()
        expires_at = self.clock() + minutes(policy.keep_alive_minutes)
        await self.keep_alive.set(tab_id, expires_at)
        if from_alert:
            await self.tab_states.update(tab_id, create=False, warned_at=None)
        logger.info(f"Tab {tab_id} kept alive until {expires_at}")
        return expires_at

    async def suspend_now(self, tab_id: int) -> bool:
        return await self.scheduler.suspend(tab_id, force=True)

    async def handle_alert_response(self, alert_id: str, button_index: int) -> bool:
        """Apply a button press on a warning alert.

        Returns ``False`` (and does nothing beyond dismissing the alert) for
        foreign alert ids, unknown tabs and unknown buttons.
        """
        tab_id = tab_id_from_alert(alert_id)
        if tab_id is None:
            logger.info(f"Ignoring response for foreign alert {alert_id!r}")
            return False

        try:
            await self.host.get(tab_id)
        except UnknownTabError:
            logger.info(f"Response for alert {alert_id} refers to a closed tab")
            self.alerts.clear_alert(alert_id)
            return False

        handled = True
        if button_index == KEEP_ALIVE_BUTTON:
            await self.keep_alive_tab(tab_id, from_alert=True)
        elif button_index == SUSPEND_NOW_BUTTON:
            await self.suspend_now(tab_id)
        else:
            logger.info(f"Unknown button {button_index} on alert {alert_id}")
            handled = False
        self.alerts.clear_alert(alert_id)
        return handled
