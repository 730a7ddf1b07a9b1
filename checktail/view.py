"""View model for one monitor's check history.

A :class:`MonitorView` owns the store, the history loader and the live
tail for a single monitor for as long as the view is open. Its state is a
single value out of :class:`Idle`, :class:`Loading`, :class:`Streaming`
and :class:`Failed`; the presentation layer reads everything it needs
from :meth:`MonitorView.snapshot`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union

from .api import PageFetcher
from .errors import ChecksError
from .history import DEFAULT_MAX_AUTO_FETCH, HistoryLoader, LoadResult
from .livetail import DEFAULT_INTERVAL_SECONDS, LiveTail
from .metrics import Metrics, compute_metrics
from .store import CheckRecord, CheckStore, newest_first
from .timeutil import utc_now
from .windows import DisplayWindow

logger = logging.getLogger(__name__)

DEFAULT_LOADING_MESSAGE = "Loading data..."


class LoadingReason(Enum):
    WINDOW_FILL = "window_fill"
    LOAD_MORE = "load_more"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    reason: LoadingReason


@dataclass(frozen=True)
class Streaming:
    pass


@dataclass(frozen=True)
class Failed:
    kind: str
    message: str


ViewState = Union[Idle, Loading, Streaming, Failed]


class EmptyState(Enum):
    NONE = "none"
    NO_DATA = "no_data"
    NO_DATA_IN_WINDOW = "no_data_in_window"


@dataclass(frozen=True)
class ViewSnapshot:
    monitor_id: str
    window: DisplayWindow
    state: ViewState
    records: list[CheckRecord]
    metrics: Metrics
    empty: EmptyState
    can_load_more: bool
    loading_message: str
    taken_at: datetime
    stored: int = 0

    @property
    def live_tail(self) -> bool:
        return isinstance(self.state, Streaming)

    @property
    def loading(self) -> bool:
        return isinstance(self.state, Loading)

    @property
    def error(self) -> str | None:
        return self.state.message if isinstance(self.state, Failed) else None

    @property
    def timeline(self) -> list[CheckRecord]:
        """Records oldest first, for left-to-right renderers."""
        return list(reversed(self.records))


class MonitorView:
    def __init__(
        self,
        fetcher: PageFetcher,
        monitor_id: str,
        *,
        max_auto_fetch: int = DEFAULT_MAX_AUTO_FETCH,
        live_tail_interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.monitor_id = monitor_id
        self.store = CheckStore()
        self.window = DisplayWindow.H24
        self.cursor: str | None = None
        self.loading_message = DEFAULT_LOADING_MESSAGE
        self._clock = clock
        self._state: ViewState = Idle()
        self._alive = True
        self._generation = 0
        self._load_task: asyncio.Task[LoadResult] | None = None
        self._loader = HistoryLoader(fetcher, monitor_id, self.store, max_auto_fetch=max_auto_fetch)
        self.tail = LiveTail(
            fetcher,
            monitor_id,
            self.store,
            interval=live_tail_interval,
            is_live=lambda: self._alive,
        )

    async def __aenter__(self) -> MonitorView:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def closed(self) -> bool:
        return not self._alive

    @property
    def live_tail(self) -> bool:
        return isinstance(self._state, Streaming)

    @property
    def can_load_more(self) -> bool:
        return self.cursor is not None and not isinstance(self._state, Loading)

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _set_state(self, state: ViewState) -> None:
        if state != self._state:
            logger.debug("Monitor %s view: %s -> %s", self.monitor_id, self._state, state)
        self._state = state

    async def _suspend(self) -> None:
        """Stop the live tail and abandon any in-flight load."""
        self._generation += 1
        await self.tail.stop()
        task, self._load_task = self._load_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except ChecksError as e:
                logger.debug("Superseded load for monitor %s ended with: %s", self.monitor_id, e.message)
            except Exception:
                logger.exception("Superseded load for monitor %s crashed", self.monitor_id)

    async def _run_load(
        self,
        reason: LoadingReason,
        start: Callable[[Callable[[], bool]], Coroutine[Any, Any, LoadResult]],
    ) -> LoadResult | None:
        generation = self._generation

        def is_live() -> bool:
            return self._is_current(generation)

        self._set_state(Loading(reason))
        task = asyncio.create_task(start(is_live))
        self._load_task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._load_task is task:
                self._load_task = None

        if task.cancelled() or not is_live():
            return None
        self.loading_message = DEFAULT_LOADING_MESSAGE
        exc = task.exception()
        if isinstance(exc, ChecksError):
            logger.error("Loading checks for monitor %s failed: %s", self.monitor_id, exc.message)
            self._set_state(Failed(exc.kind, exc.message))
            return None
        if exc is not None:
            self._set_state(Failed("error", f"{type(exc).__name__}: {exc}"))
            raise exc
        return task.result()

    def _on_progress(self, pages: int, fetched: int) -> None:
        if pages > 1:
            self.loading_message = f"Retrieving history... Page {pages} ({fetched} logs)"

    async def select_window(self, window: DisplayWindow) -> LoadResult | None:
        """Fill ``window`` from the API and make it the active filter.

        Returns None when nothing was fetched, the load failed (see
        :attr:`state`), or the load was superseded by another action.
        """
        if not self._alive:
            return None
        await self._suspend()
        self.window = window
        if not window.bounded and len(self.store):
            self._set_state(Idle())
            return None

        self.loading_message = "Initializing timeline..."
        now = self._clock()
        result = await self._run_load(
            LoadingReason.WINDOW_FILL,
            lambda is_live: self._loader.fill(window, now=now, is_live=is_live, on_progress=self._on_progress),
        )
        if result is None:
            return None
        self.cursor = result.cursor
        if window.bounded:
            self._set_state(Streaming())
            self.tail.start()
        else:
            self._set_state(Idle())
        return result

    async def reload(self) -> LoadResult | None:
        return await self.select_window(self.window)

    async def load_more(self) -> LoadResult | None:
        """Fetch one older page from the retained cursor; switches to the unbounded window."""
        cursor = self.cursor
        if not self._alive or cursor is None or isinstance(self._state, Loading):
            return None
        await self._suspend()
        self.window = DisplayWindow.CUSTOM
        self.loading_message = "Loading history..."
        result = await self._run_load(
            LoadingReason.LOAD_MORE,
            lambda is_live: self._loader.load_more(cursor, is_live=is_live),
        )
        if result is None:
            return None
        self.cursor = result.cursor
        self._set_state(Idle())
        return result

    async def set_live_tail(self, enabled: bool) -> bool:
        """Toggle live tail; ignored while a load is running. Returns the new flag."""
        if not self._alive or isinstance(self._state, Loading):
            return self.live_tail
        if enabled and not self.live_tail:
            self._set_state(Streaming())
            self.tail.start()
        elif not enabled and self.live_tail:
            await self.tail.stop()
            self._set_state(Idle())
        return self.live_tail

    async def close(self) -> None:
        if not self._alive:
            return
        self._alive = False
        await self._suspend()
        self._set_state(Idle())

    def filtered(self, now: datetime | None = None) -> list[CheckRecord]:
        """Records inside the active window, newest first."""
        cutoff = self.window.cutoff(now or self._clock())
        if cutoff is None:
            return self.store.newest_first()
        return newest_first(r for r in self.store if r.checked_at >= cutoff)

    def timeline(self, now: datetime | None = None) -> list[CheckRecord]:
        return list(reversed(self.filtered(now)))

    def metrics(self, now: datetime | None = None) -> Metrics:
        return compute_metrics(self.filtered(now))

    def empty_state(self, now: datetime | None = None) -> EmptyState:
        return self._empty_for(self.filtered(now))

    def _empty_for(self, records: list[CheckRecord]) -> EmptyState:
        if records:
            return EmptyState.NONE
        if not len(self.store):
            return EmptyState.NO_DATA
        return EmptyState.NO_DATA_IN_WINDOW

    def snapshot(self, now: datetime | None = None) -> ViewSnapshot:
        now = now or self._clock()
        records = self.filtered(now)
        return ViewSnapshot(
            monitor_id=self.monitor_id,
            window=self.window,
            state=self._state,
            records=records,
            metrics=compute_metrics(records),
            empty=self._empty_for(records),
            can_load_more=self.can_load_more,
            loading_message=self.loading_message,
            taken_at=now,
            stored=len(self.store),
        )
