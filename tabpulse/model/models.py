__all__ = [
    "AlertOutcome",
    "DiscardOutcome",
    "HeuristicSample",
    "TabInfo",
    "TabState",
]


from dataclasses import asdict, dataclass
from typing import Any, TypedDict


class HeuristicSample(TypedDict):
    """Responsiveness sample reported by a monitored document."""

    jankMs: float
    rafFps: float


HEALTHY_SAMPLE: HeuristicSample = {"jankMs": 0, "rafFps": 60}


def coerce_heuristics(payload: Any) -> HeuristicSample:
    """Turn an arbitrary payload into a sample, falling back to healthy values."""
    sample: HeuristicSample = dict(HEALTHY_SAMPLE)  # type: ignore[assignment]
    if not isinstance(payload, dict):
        return sample
    for key in ("jankMs", "rafFps"):
        value = payload.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            sample[key] = value  # type: ignore[literal-required]
    return sample


@dataclass
class TabState:
    """Per-tab record of observed signals and the current warning."""

    last_input_at: int | None = None
    last_network_at: int = 0
    media_playing: bool = False
    websocket_active: bool = False
    last_heuristics: HeuristicSample | None = None
    warned_at: int | None = None

    @property
    def heuristics(self) -> HeuristicSample:
        return self.last_heuristics or dict(HEALTHY_SAMPLE)  # type: ignore[return-value]

    def to_record(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> "TabState":
        if not record:
            return cls()
        known = {k: v for k, v in record.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class TabInfo:
    """Host-side view of a tab (what the browser knows about it)."""

    id: int | None
    url: str | None = None
    title: str = ""
    window_id: int = 1
    active: bool = False
    pinned: bool = False
    audible: bool = False
    discarded: bool = False
    status: str = "complete"


@dataclass
class DiscardOutcome:
    tab_id: int
    ok: bool
    error: str | None = None


@dataclass
class AlertOutcome:
    alert_id: str
    ok: bool
    error: str | None = None
    replaced: bool = False
