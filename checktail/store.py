"""In-memory check record store for a single monitor view."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from .errors import MalformedResponse
from .timeutil import parse_datetime

logger = logging.getLogger(__name__)

RecordId = Union[str, int]
Latency = Union[int, float]


@dataclass(frozen=True)
class CheckRecord:
    """One completed health check as reported by the API.

    Attributes:
        id: Opaque identifier, stable across fetches.
        checked_at: When the check ran (aware, UTC).
        is_up: Outcome of the check.
        status_code: Observed HTTP status, or None on network failure.
        response_time_ms: Latency in milliseconds, or None if the request never completed.
    """

    id: RecordId
    checked_at: datetime
    is_up: bool
    status_code: int | None = None
    response_time_ms: Latency | None = None

    @classmethod
    def from_api(cls, raw: Any) -> CheckRecord:
        if not isinstance(raw, dict):
            raise MalformedResponse(f"check record must be an object, got {type(raw).__name__}")
        rid = raw.get("id")
        if rid is None or isinstance(rid, (bool, float, dict, list)):
            raise MalformedResponse(f"check record has no usable id: {rid!r}")
        checked_at = parse_datetime(str(raw.get("checked_at") or ""))
        if checked_at is None:
            raise MalformedResponse(f"check record {rid!r} has no valid checked_at")
        return cls(
            id=rid,
            checked_at=checked_at,
            is_up=bool(raw.get("is_up")),
            status_code=_opt_int(raw.get("status_code")),
            response_time_ms=_opt_latency(rid, raw.get("response_time_ms")),
        )


def _opt_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return None


def _opt_latency(rid: RecordId, v: Any) -> Latency | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        value = v
    else:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
    if not math.isfinite(value):
        raise MalformedResponse(f"check record {rid!r} has non-finite response_time_ms: {v!r}")
    return value


def parse_records(items: Iterable[Any]) -> list[CheckRecord]:
    out: list[CheckRecord] = []
    for item in items:
        try:
            out.append(CheckRecord.from_api(item))
        except MalformedResponse as e:
            logger.warning("Skipping malformed check record: %s", e)
    return out


def newest_first(records: Iterable[CheckRecord]) -> list[CheckRecord]:
    return sorted(records, key=lambda r: r.checked_at, reverse=True)


def oldest_first(records: Iterable[CheckRecord]) -> list[CheckRecord]:
    return sorted(records, key=lambda r: r.checked_at)


class CheckStore:
    """Deduplicated set of check records keyed by record id.

    All mutation goes through :meth:`merge`. A record fetched again
    replaces the stored value for its id; records are never removed.
    """

    def __init__(self) -> None:
        self._by_id: dict[RecordId, CheckRecord] = {}
        self._version = 0

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._by_id

    def __iter__(self):
        return iter(list(self._by_id.values()))

    @property
    def version(self) -> int:
        return self._version

    def get(self, record_id: RecordId) -> CheckRecord | None:
        return self._by_id.get(record_id)

    def merge(self, records: Iterable[CheckRecord]) -> int:
        """Insert or overwrite records by id; return how many ids were new."""
        added = 0
        changed = False
        for r in records:
            prev = self._by_id.get(r.id)
            if prev is None:
                added += 1
            if prev != r:
                self._by_id[r.id] = r
                changed = True
        if changed:
            self._version += 1
        return added

    def records(self) -> list[CheckRecord]:
        return list(self._by_id.values())

    def newest_first(self) -> list[CheckRecord]:
        return newest_first(self._by_id.values())

    def oldest_first(self) -> list[CheckRecord]:
        return oldest_first(self._by_id.values())

    def oldest(self) -> CheckRecord | None:
        if not self._by_id:
            return None
        return min(self._by_id.values(), key=lambda r: r.checked_at)

    def newest(self) -> CheckRecord | None:
        if not self._by_id:
            return None
        return max(self._by_id.values(), key=lambda r: r.checked_at)
