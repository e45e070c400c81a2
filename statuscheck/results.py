"""Check results: attempts, latency statistics and the tri-state verdict.

A Result is produced once per check invocation and handed to whatever stores
or exports it. Durations are float seconds throughout.
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


@dataclass(frozen=True)
class Attempt:
    """One request/response cycle. An empty error means the attempt passed."""

    rtt: float
    error: str = ""

    @property
    def failed(self) -> bool:
        return self.error != ""


@dataclass(frozen=True)
class Stats:
    total: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass
class Result:
    """Verdict of a single check invocation."""

    title: str
    endpoint: str
    times: tuple[Attempt, ...] = ()
    threshold_rtt: float = 0.0
    stats: Stats = field(default_factory=Stats)
    status: Status = Status.HEALTHY
    notice: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def healthy(self) -> bool:
        return self.status is Status.HEALTHY

    @property
    def degraded(self) -> bool:
        return self.status is Status.DEGRADED

    @property
    def down(self) -> bool:
        return self.status is Status.DOWN

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation for storage and exporters."""
        return {
            "title": self.title,
            "endpoint": self.endpoint,
            "timestamp": self.timestamp,
            "times": [{"rtt": a.rtt, "error": a.error} for a in self.times],
            "threshold_rtt": self.threshold_rtt,
            "stats": {
                "total": self.stats.total,
                "mean": self.stats.mean,
                "median": self.stats.median,
                "min": self.stats.min,
                "max": self.stats.max,
            },
            "status": self.status.value,
            "healthy": self.healthy,
            "degraded": self.degraded,
            "down": self.down,
            "notice": self.notice,
        }


# ── Statistics ───────────────────────────────────────────────────────────────


def compute_stats(attempts: Sequence[Attempt]) -> Stats:
    """Summarize the round trip times of the attempts that passed.

    Failed attempts are left out; if none passed, every figure is zero. The
    median of an even number of samples is the mean of the two middle values
    (``statistics.median``).
    """
    rtts = [a.rtt for a in attempts if not a.failed]
    if not rtts:
        return Stats()
    total = sum(rtts)
    return Stats(
        total=total,
        mean=total / len(rtts),
        median=statistics.median(rtts),
        min=min(rtts),
        max=max(rtts),
    )


def format_duration(seconds: float) -> str:
    """Render a duration compactly: ``200ms``, ``1.5s``, ``2m5s``, ``350us``."""
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    if seconds < 1e-6:
        return f"{sign}{round(seconds * 1e9)}ns"
    if seconds < 1e-3:
        return f"{sign}{_trim(seconds * 1e6)}us"
    if seconds < 1:
        return f"{sign}{_trim(seconds * 1e3)}ms"
    if seconds < 60:
        return f"{sign}{_trim(seconds)}s"

    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    out = f"{hours}h" if hours else ""
    return f"{sign}{out}{minutes}m{_trim(secs)}s"


def _trim(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")
