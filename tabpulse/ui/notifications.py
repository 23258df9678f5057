import platform
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tabpulse.model.models import AlertOutcome
from tabpulse.watchers.logger import logger

if sys.platform == "win32":
    from win10toast import ToastNotifier  # type: ignore[import-untyped, unused-ignore]

ALERT_PREFIX = "tabpulse_warn_"
WARN_TITLE = "TabPulse Will Suspend a Tab"
WARN_ACTIONS = ("Keep Alive", "Suspend Now")
# priority hint passed along with a warning alert
HIGH_PRIORITY = 2
HISTORY_LIMIT = 200


@dataclass
class NotificationConfig:
    """Configuration for :class:`NotificationService`.

    ``icon_path`` is optional; when it is set the file must exist, otherwise
    alert creation fails (and the failure is reported, not raised).
    """

    icon_path: Path | None = None
    toast: bool = True
    toast_duration: int = 5


@dataclass
class Alert:
    alert_id: str
    tab_id: int
    title: str
    message: str
    actions: tuple[str, ...]
    priority: int = HIGH_PRIORITY
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.alert_id,
            "tab_id": self.tab_id,
            "title": self.title,
            "message": self.message,
            "actions": list(self.actions),
            "priority": self.priority,
            "created_at": self.created_at,
        }


def alert_id_for(tab_id: int) -> str:
    return f"{ALERT_PREFIX}{tab_id}"


def tab_id_from_alert(alert_id: str) -> int | None:
    """Parse the tab id out of an alert id; ``None`` for foreign ids."""
    if not alert_id.startswith(ALERT_PREFIX):
        return None
    try:
        return int(alert_id.rsplit("_", 1)[-1])
    except ValueError:
        return None


def warn_message(tab_title: str) -> str:
    return f'The tab "{tab_title}" is idle and will be suspended to save memory.'


class NotificationService:
    """Outstanding interactive alerts, at most one per tab, with history."""

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self.platform = platform.system()
        self.config = config or NotificationConfig()
        self._outstanding: dict[str, Alert] = {}
        self._history: deque[dict[str, Any]] = deque(maxlen=HISTORY_LIMIT)

    def show_alert(
        self,
        tab_id: int,
        title: str,
        message: str,
        actions: tuple[str, ...] = WARN_ACTIONS,
        priority: int = HIGH_PRIORITY,
    ) -> AlertOutcome:
        """Show (or replace) the alert for ``tab_id``.

        A second call for the same tab replaces the outstanding alert rather
        than stacking another one.
        """
        alert_id = alert_id_for(tab_id)
        icon = self.config.icon_path
        if icon is not None and not icon.is_file():
            error = f"icon not found: {icon}"
            logger.warning(f"Failed to create alert for tab {tab_id}: {error}")
            return AlertOutcome(alert_id, ok=False, error=error)

        replaced = alert_id in self._outstanding
        alert = Alert(alert_id, tab_id, title, message, tuple(actions), priority)
        self._outstanding[alert_id] = alert
        if self.platform == "Windows" and self.config.toast:
            self._toast(alert)
        self._history.append({**alert.to_dict(), "replaced": replaced})
        return AlertOutcome(alert_id, ok=True, replaced=replaced)

    def clear_alert(self, alert_id: str) -> bool:
        return self._outstanding.pop(alert_id, None) is not None

    def clear_for_tab(self, tab_id: int) -> bool:
        return self.clear_alert(alert_id_for(tab_id))

    def get_alert(self, alert_id: str) -> Alert | None:
        return self._outstanding.get(alert_id)

    def outstanding(self) -> list[Alert]:
        return list(self._outstanding.values())

    def _toast(self, alert: Alert) -> None:
        try:
            notifier = ToastNotifier()
            notifier.show_toast(  # pyright: ignore[reportUnknownMemberType]
                alert.title,
                alert.message,
                icon_path=str(self.config.icon_path) if self.config.icon_path else None,
                duration=self.config.toast_duration,
                threaded=True,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Toast delivery failed for {alert.alert_id}: {e}")

    # ------------------------------------------------------------------
    # Query helpers
    def get_notification_history(self) -> list[dict[str, Any]]:
        """Return a copy of the most recent ``HISTORY_LIMIT`` alerts."""
        return list(self._history)
