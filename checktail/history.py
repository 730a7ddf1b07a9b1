"""Window fill: page backwards through check history until a window is covered."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .api import Page, PageFetcher
from .store import CheckStore
from .timeutil import utc_now
from .windows import DisplayWindow

logger = logging.getLogger(__name__)

DEFAULT_MAX_AUTO_FETCH = 2000


class StopReason(Enum):
    WINDOW_COVERED = "window_covered"
    HISTORY_EXHAUSTED = "history_exhausted"
    SAFETY_CAP_HIT = "safety_cap_hit"
    SINGLE_PAGE = "single_page"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class LoadResult:
    """Outcome of a window fill or a manual load-more.

    ``cursor`` is the position to resume from, or None once history is exhausted.
    """

    reason: StopReason
    pages: int
    fetched: int
    added: int
    cursor: str | None

    @property
    def capped(self) -> bool:
        return self.reason is StopReason.SAFETY_CAP_HIT


ProgressCallback = Callable[[int, int], None]


def _always_live() -> bool:
    return True


class HistoryLoader:
    def __init__(
        self,
        fetcher: PageFetcher,
        monitor_id: str,
        store: CheckStore,
        *,
        max_auto_fetch: int = DEFAULT_MAX_AUTO_FETCH,
    ) -> None:
        if max_auto_fetch <= 0:
            raise ValueError("max_auto_fetch must be positive")
        self.fetcher = fetcher
        self.monitor_id = monitor_id
        self.store = store
        self.max_auto_fetch = max_auto_fetch

    async def fill(
        self,
        window: DisplayWindow,
        *,
        now: datetime | None = None,
        is_live: Callable[[], bool] = _always_live,
        on_progress: ProgressCallback | None = None,
    ) -> LoadResult:
        """Fetch pages newest to oldest until ``window`` is covered.

        Pages are merged into the store as they arrive, so a failure part way
        through leaves the records already fetched in place. Errors from the
        fetcher propagate unchanged.
        """
        target = window.cutoff(now or utc_now())
        cursor: str | None = None
        pages = fetched = added = 0

        while True:
            page = await self.fetcher.fetch_page(self.monitor_id, cursor, target)
            if not is_live():
                logger.debug("Discarding page for monitor %s: view is gone", self.monitor_id)
                return LoadResult(StopReason.ABANDONED, pages, fetched, added, cursor)

            pages += 1
            if not page.records:
                return self._done(StopReason.HISTORY_EXHAUSTED, pages, fetched, added, None)

            fetched += len(page.records)
            added += self.store.merge(page.records)
            if on_progress is not None:
                on_progress(pages, fetched)

            reason = self._stop_reason(page, fetched, target)
            if reason is StopReason.HISTORY_EXHAUSTED:
                return self._done(reason, pages, fetched, added, None)
            if reason is not None:
                return self._done(reason, pages, fetched, added, page.next_cursor)
            cursor = page.next_cursor

    def _stop_reason(self, page: Page, fetched: int, target: datetime | None) -> StopReason | None:
        if not page.next_cursor:
            return StopReason.HISTORY_EXHAUSTED
        if fetched >= self.max_auto_fetch:
            return StopReason.SAFETY_CAP_HIT
        if target is None:
            return StopReason.SINGLE_PAGE
        oldest = page.oldest()
        if oldest is not None and oldest.checked_at < target:
            return StopReason.WINDOW_COVERED
        return None

    def _done(self, reason: StopReason, pages: int, fetched: int, added: int, cursor: str | None) -> LoadResult:
        if reason is StopReason.SAFETY_CAP_HIT:
            logger.warning(
                "Hit max auto-fetch limit (%d) for monitor %s after %d pages",
                self.max_auto_fetch,
                self.monitor_id,
                pages,
            )
        else:
            logger.debug(
                "Window fill for monitor %s stopped: %s (%d pages, %d records, %d new)",
                self.monitor_id,
                reason.value,
                pages,
                fetched,
                added,
            )
        return LoadResult(reason, pages, fetched, added, cursor)

    async def load_more(self, cursor: str, *, is_live: Callable[[], bool] = _always_live) -> LoadResult:
        """Fetch the single page after ``cursor`` with no time bound and merge it."""
        page = await self.fetcher.fetch_page(self.monitor_id, cursor, None)
        if not is_live():
            return LoadResult(StopReason.ABANDONED, 0, 0, 0, cursor)
        added = self.store.merge(page.records)
        reason = StopReason.SINGLE_PAGE if page.next_cursor else StopReason.HISTORY_EXHAUSTED
        return LoadResult(reason, 1, len(page.records), added, page.next_cursor or None)
