"""Uptime and latency aggregates over a slice of check records."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .store import CheckRecord, Latency

PERCENTILES = (50, 75, 99, 100)


def latency_samples(records: Iterable[CheckRecord]) -> list[Latency]:
    """Ascending response times, skipping missing and negative values."""
    return sorted(
        r.response_time_ms for r in records if r.response_time_ms is not None and r.response_time_ms >= 0
    )


def percentile(sorted_values: Sequence[Latency], p: float) -> Latency | None:
    """Nearest-rank percentile: the value at index ``ceil(p/100 * n) - 1``.

    ``sorted_values`` must already be ascending. Returns None when empty.
    """
    n = len(sorted_values)
    if n == 0:
        return None
    idx = math.ceil(p * n / 100) - 1
    idx = max(0, min(n - 1, idx))
    return sorted_values[idx]


def format_ms(v: Latency | None) -> str:
    if v is None:
        return "—"
    if isinstance(v, int):
        return f"{v}ms"
    return f"{v:.1f}".rstrip("0").rstrip(".") + "ms"


def uptime_percentage(records: Sequence[CheckRecord]) -> float:
    if not records:
        return 0.0
    up = sum(1 for r in records if r.is_up)
    return round(up / len(records) * 100, 2)


@dataclass(frozen=True)
class Metrics:
    total: int
    up: int
    uptime_pct: float
    p50: Latency | None = None
    p75: Latency | None = None
    p99: Latency | None = None
    p100: Latency | None = None
    max_response_ms: Latency = 1

    @property
    def down(self) -> int:
        return self.total - self.up

    @property
    def has_latency(self) -> bool:
        return self.p100 is not None


def compute_metrics(records: Sequence[CheckRecord]) -> Metrics:
    samples = latency_samples(records)
    p50, p75, p99, p100 = (percentile(samples, p) for p in PERCENTILES)
    # Timeline scale: missing latency counts as 0 and the scale never drops below 1.
    max_response = max([r.response_time_ms or 0 for r in records] + [1])
    return Metrics(
        total=len(records),
        up=sum(1 for r in records if r.is_up),
        uptime_pct=uptime_percentage(records),
        p50=p50,
        p75=p75,
        p99=p99,
        p100=p100,
        max_response_ms=max_response,
    )
