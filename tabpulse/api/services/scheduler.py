"""Periodic suspension scheduler.

Each tick reads the policy once, enumerates the host's live tabs and, for each
tab, runs the eligibility filter followed by the warn -> grace -> suspend state
machine. Ticks never overlap; a tick requested while another is running is
skipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from tabpulse.api.services.health import (
    health_score,
    is_privileged_url,
    is_whitelisted,
    minutes,
    now_ms,
    seconds,
)
from tabpulse.api.services.host import TabHost, UnknownTabError
from tabpulse.api.services.keep_alive import KeepAliveRegistry
from tabpulse.api.services.policy import PolicyStore
from tabpulse.api.services.storage import StoreUnavailableError
from tabpulse.api.services.tab_state import TabStateStore
from tabpulse.config import Policy
from tabpulse.model.models import TabInfo, TabState
from tabpulse.ui.notifications import (
    WARN_ACTIONS,
    WARN_TITLE,
    NotificationService,
    warn_message,
)
from tabpulse.watchers.logger import logger

# Failsafe: tabs idle this long are warned regardless of their health score.
LONG_IDLE_MINUTES = 30
UNHEALTHY_BELOW = 40
NETWORK_QUIET_SEC = 20
DEFAULT_INTERVAL_SEC = 10.0


class Decision(str, Enum):
    INELIGIBLE = "ineligible"
    SEEDED = "seeded"
    EXEMPT = "exempt"
    ACTIVE = "active"
    IDLE_HEALTHY = "idle_healthy"
    WARNED = "warned"
    WAITING = "waiting"
    SUSPENDED = "suspended"
    SUSPEND_FAILED = "suspend_failed"
    UNWARNED = "unwarned"
    SKIPPED = "skipped"


@dataclass
class TickReport:
    started_at: int
    ran: bool = True
    reason: str | None = None
    decisions: dict[int, Decision] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at,
            "ran": self.ran,
            "reason": self.reason,
            "decisions": {k: v.value for k, v in self.decisions.items()},
        }


class Scheduler:
    def __init__(
        self,
        tab_states: TabStateStore,
        keep_alive: KeepAliveRegistry,
        policy_store: PolicyStore,
        host: TabHost,
        alerts: NotificationService,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.tab_states = tab_states
        self.keep_alive = keep_alive
        self.policy_store = policy_store
        self.host = host
        self.alerts = alerts
        self.clock = clock
        self.last_report: TickReport | None = None
        self._tick_lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # --- tick ---------------------------------------------------------

    async def tick(self) -> TickReport:
        now = self.clock()
        if self._tick_lock.locked():
            logger.info("Tick skipped: previous tick still running")
            return TickReport(now, ran=False, reason="busy")

        async with self._tick_lock:
            report = await self._run_tick(now)
        self.last_report = report
        return report

    async def _run_tick(self, now: int) -> TickReport:
        try:
            policy = await self.policy_store.get()
        except StoreUnavailableError as e:
            logger.warning(f"Tick skipped: policy unavailable ({e})")
            return TickReport(now, ran=False, reason="store_unavailable")
        if not policy.enabled:
            return TickReport(now, ran=False, reason="disabled")

        try:
            tabs = await self.host.query()
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Tick skipped: cannot enumerate tabs ({e})")
            return TickReport(now, ran=False, reason="host_unavailable")

        report = TickReport(now)
        for tab in tabs:
            try:
                decision = await self.evaluate(tab, policy, now)
            except StoreUnavailableError as e:
                logger.warning(f"Tab {tab.id} skipped this tick: {e}")
                decision = Decision.SKIPPED
            except Exception:
                logger.exception(f"Tab {tab.id} evaluation failed")
                decision = Decision.SKIPPED
            if tab.id is not None:
                report.decisions[tab.id] = decision
        return report

    # --- per tab ------------------------------------------------------

    async def evaluate(self, tab: TabInfo, policy: Policy, now: int) -> Decision:
        """Run the filter and the state machine for one tab."""
        if not tab.id or not tab.url or is_privileged_url(tab.url) or tab.discarded:
            return Decision.INELIGIBLE

        state = await self.tab_states.get(tab.id)
        if state.last_input_at is None:
            # first sighting: start the idle clock, judge it next tick
            if not await self._still_open(tab.id):
                return Decision.INELIGIBLE
            await self.tab_states.update(tab.id, last_input_at=now)
            return Decision.SEEDED

        reason = await self.exemption(tab, state, policy, now)
        if reason is not None:
            if state.warned_at is not None:
                await self._unwarn(tab.id, f"exempt ({reason})")
                return Decision.UNWARNED
            return Decision.EXEMPT

        idle_ms = now - state.last_input_at
        if idle_ms < minutes(policy.idle_minutes):
            if state.warned_at is not None:
                await self._unwarn(tab.id, "no longer idle")
                return Decision.UNWARNED
            return Decision.ACTIVE

        heur = state.heuristics
        score = health_score(
            idle_ms,
            heur["jankMs"],
            heur["rafFps"],
            network_active=self._network_recent(state, now),
            media_playing=state.media_playing or tab.audible,
        )
        very_idle = idle_ms >= minutes(LONG_IDLE_MINUTES)
        if not (score < UNHEALTHY_BELOW or very_idle):
            return Decision.IDLE_HEALTHY

        if state.warned_at is None:
            warned = await self.tab_states.update(tab.id, create=False, warned_at=now)
            if warned is None:
                logger.info(f"Tab {tab.id} closed during the tick")
                return Decision.INELIGIBLE
            logger.info(
                f"Tab {tab.id} warned: idle={idle_ms // 1000}s score={score} "
                f"very_idle={very_idle}"
            )
            await self._show_warning(tab.id)
            return Decision.WARNED

        if now - state.warned_at >= seconds(policy.grace_period_sec):
            if await self.suspend(tab.id):
                return Decision.SUSPENDED
            return Decision.SUSPEND_FAILED
        return Decision.WAITING

    async def exemption(
        self, tab: TabInfo, state: TabState, policy: Policy, now: int
    ) -> str | None:
        """Return why the tab must not be suspended right now, or ``None``."""
        if tab.active:
            return "focused"
        if await self.keep_alive.is_kept_alive(tab.id, now):  # type: ignore[arg-type]
            return "keep_alive"
        if policy.whitelist_pinned and tab.pinned:
            return "pinned"
        if is_whitelisted(tab.url or "", policy.whitelist_domains):
            return "whitelisted"
        if policy.do_not_suspend_audible and tab.audible:
            return "audible"
        if policy.do_not_suspend_media_playing and (state.media_playing or tab.audible):
            return "media_playing"
        if policy.do_not_suspend_realtime_apps and state.websocket_active:
            return "realtime"
        if policy.do_not_suspend_network_active and self._network_recent(state, now):
            return "network_active"
        return None

    @staticmethod
    def _network_recent(state: TabState, now: int) -> bool:
        return now - (state.last_network_at or 0) < seconds(NETWORK_QUIET_SEC)

    # --- side effects -------------------------------------------------

    async def _show_warning(self, tab_id: int) -> None:
        try:
            tab = await self.host.get(tab_id)
        except UnknownTabError:
            logger.info(f"Tab {tab_id} closed before its warning could be shown")
            return
        outcome = self.alerts.show_alert(
            tab_id, WARN_TITLE, warn_message(tab.title or tab.url or ""), WARN_ACTIONS
        )
        if not outcome.ok:
            logger.warning(f"Alert for tab {tab_id} failed: {outcome.error}")

    async def _still_open(self, tab_id: int) -> bool:
        try:
            await self.host.get(tab_id)
        except UnknownTabError:
            return False
        return True

    async def _unwarn(self, tab_id: int, why: str) -> None:
        await self.tab_states.update(tab_id, create=False, warned_at=None)
        self.alerts.clear_for_tab(tab_id)
        logger.info(f"Tab {tab_id} warning cleared: {why}")

    async def suspend(self, tab_id: int, *, force: bool = False) -> bool:
        """Discard the tab unless it is gone or already discarded.

        Returns ``True`` only when a discard was issued and succeeded.
        """
        try:
            tab = await self.host.get(tab_id)
        except UnknownTabError:
            logger.info(f"Suspend of tab {tab_id} ignored: unknown tab")
            return False
        if tab.discarded:
            return False

        try:
            outcome = await self.host.discard(tab_id)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Could not discard tab {tab_id}: {e}")
            return False
        if not outcome.ok:
            logger.warning(f"Could not discard tab {tab_id}: {outcome.error}")
            return False

        await self.tab_states.update(tab_id, create=False, warned_at=None)
        self.alerts.clear_for_tab(tab_id)
        logger.info(f"Tab {tab_id} suspended{' (forced)' if force else ''}")
        return True

    # --- driver -------------------------------------------------------

    async def _interval(self) -> float:
        try:
            policy = await self.policy_store.get()
        except StoreUnavailableError:
            return DEFAULT_INTERVAL_SEC
        return policy.check_interval_sec

    async def run_forever(self) -> None:
        logger.info("Scheduler started")
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Unexpected error during tick")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=await self._interval())
            except asyncio.TimeoutError:
                continue
        logger.info("Scheduler stopped")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
