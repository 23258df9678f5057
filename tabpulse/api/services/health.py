"""Health scoring and the small helpers the scheduler shares with the API."""

from __future__ import annotations

import math
import time
from urllib.parse import urlsplit

LONG_IDLE_REFERENCE_MS = 10 * 60 * 1000
JANK_DIVISOR = 50
MAX_JANK_PENALTY = 40
LOW_FPS = 20

PRIVILEGED_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "about:",
    "devtools://",
    "view-source:",
)


def minutes(n: float) -> int:
    return int(n * 60 * 1000)


def seconds(n: float) -> int:
    return int(n * 1000)


def now_ms() -> int:
    return int(time.time() * 1000)


def health_score(
    idle_ms: float,
    jank_ms: float,
    raf_fps: float,
    *,
    network_active: bool = False,
    media_playing: bool = False,
) -> int:
    """Heuristic responsiveness score: 100 is healthy, 0 is very bad.

    Deductions: 10 for a long idle tab, up to 40 for event-loop lag
    (``jank_ms / 50``), 20 for a frame rate under 20, 10 while the network is
    busy and 30 while media plays.
    """
    score = 100.0
    if idle_ms > LONG_IDLE_REFERENCE_MS:
        score -= 10
    score -= min(MAX_JANK_PENALTY, max(0.0, jank_ms / JANK_DIVISOR))
    if raf_fps < LOW_FPS:
        score -= 20
    if network_active:
        score -= 10
    if media_playing:
        score -= 30
    return max(0, min(100, math.floor(score + 0.5)))


def domain_from_url(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def is_whitelisted(url: str, domains: tuple[str, ...] | list[str]) -> bool:
    """Suffix match of the url's host against the configured domains."""
    host = domain_from_url(url)
    if not host:
        return False
    return any(host == d or host.endswith("." + d) for d in domains if d)


def is_privileged_url(url: str) -> bool:
    return url.lower().startswith(PRIVILEGED_PREFIXES)


def format_duration(total_minutes: float) -> str:
    """Short label for a keep-alive duration, e.g. ``(45m)`` or ``(2h)``."""
    if total_minutes < 60:  # noqa: PLR2004
        return f"({int(total_minutes)}m)"
    return f"({round(total_minutes / 60)}h)"
