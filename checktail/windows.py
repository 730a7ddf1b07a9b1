from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum


class DisplayWindow(Enum):
    M15 = ("15m", 15 * 60)
    H1 = ("1h", 60 * 60)
    H6 = ("6h", 6 * 60 * 60)
    H24 = ("24h", 24 * 60 * 60)
    D7 = ("7d", 7 * 24 * 60 * 60)
    D30 = ("30d", 30 * 24 * 60 * 60)
    CUSTOM = ("custom", None)

    def __init__(self, key: str, seconds: int | None) -> None:
        self.key = key
        self.seconds = seconds

    @property
    def bounded(self) -> bool:
        return self.seconds is not None

    @property
    def duration(self) -> timedelta | None:
        if self.seconds is None:
            return None
        return timedelta(seconds=self.seconds)

    def cutoff(self, now: datetime) -> datetime | None:
        """Oldest ``checked_at`` still inside the window, or None when unbounded."""
        if self.seconds is None:
            return None
        return now - timedelta(seconds=self.seconds)

    @classmethod
    def parse(cls, key: str) -> DisplayWindow:
        k = (key or "").strip().lower()
        if k in {"all", ""}:
            k = "custom"
        for w in cls:
            if w.key == k:
                return w
        raise ValueError(f"Unknown window {key!r} (expected one of: {', '.join(w.key for w in cls)})")


STANDARD_WINDOWS: list[DisplayWindow] = [w for w in DisplayWindow if w.bounded]
