"""Shared fixtures and a simulated paginated checks backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from checktail.api import Page
from checktail.errors import FetchFailed
from checktail.store import CheckRecord, newest_first

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_record(
    rid: int | str,
    minutes_ago: float,
    *,
    is_up: bool = True,
    status_code: int | None = 200,
    response_time_ms: int | float | None = 100,
) -> CheckRecord:
    return CheckRecord(
        id=rid,
        checked_at=NOW - timedelta(minutes=minutes_ago),
        is_up=is_up,
        status_code=status_code,
        response_time_ms=response_time_ms,
    )


class FakeBackend:
    """Serves records newest first in fixed-size pages; cursor is an offset.

    The ``since`` hint is recorded but ignored, like a backend that does not
    support time filtering.
    """

    def __init__(self, records: list[CheckRecord], *, page_size: int = 25) -> None:
        self.records = newest_first(records)
        self.page_size = page_size
        self.calls: list[tuple[str | None, datetime | None]] = []
        self.fail_on_calls: set[int] = set()

    async def fetch_page(
        self,
        monitor_id: str,
        cursor: str | None = None,
        since: datetime | None = None,
    ) -> Page:
        self.calls.append((cursor, since))
        if len(self.calls) in self.fail_on_calls:
            raise FetchFailed("Failed to load checks", status_code=500)
        start = int(cursor) if cursor else 0
        chunk = self.records[start : start + self.page_size]
        end = start + self.page_size
        return Page(records=list(chunk), next_cursor=str(end) if end < len(self.records) else None)


class UnlimitedBackend:
    """Generates one synthetic check per minute going back forever."""

    def __init__(self, *, page_size: int = 100) -> None:
        self.page_size = page_size
        self.calls = 0

    async def fetch_page(
        self,
        monitor_id: str,
        cursor: str | None = None,
        since: datetime | None = None,
    ) -> Page:
        self.calls += 1
        start = int(cursor) if cursor else 0
        records = [make_record(i, i) for i in range(start, start + self.page_size)]
        return Page(records=records, next_cursor=str(start + self.page_size))


class BlockingBackend(FakeBackend):
    """FakeBackend whose first fetch waits until ``release`` is set."""

    def __init__(self, records: list[CheckRecord], **kwargs) -> None:
        super().__init__(records, **kwargs)
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def fetch_page(self, monitor_id, cursor=None, since=None) -> Page:
        if not self.started.is_set():
            self.started.set()
            await self.release.wait()
        return await super().fetch_page(monitor_id, cursor, since)


def every_ten_minutes(hours: int = 48) -> list[CheckRecord]:
    return [make_record(i, 10 * i, response_time_ms=100 + i) for i in range(hours * 6)]


@pytest.fixture
def history_records() -> list[CheckRecord]:
    """Two days of checks, one every ten minutes, newest at NOW."""
    return every_ten_minutes(48)


@pytest.fixture
def backend(history_records: list[CheckRecord]) -> FakeBackend:
    return FakeBackend(history_records, page_size=25)
