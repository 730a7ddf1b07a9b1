from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from .api import PageFetcher
from .errors import ChecksError
from .store import CheckStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0


class LiveTail:
    """Periodically merge the newest page of checks into a store.

    Never touches the history cursor and never removes records. The
    polling task is owned by this object; :meth:`stop` cancels it.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        monitor_id: str,
        store: CheckStore,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        is_live: Callable[[], bool] = lambda: True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.fetcher = fetcher
        self.monitor_id = monitor_id
        self.store = store
        self.interval = interval
        self._is_live = is_live
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """Run one poll; return the number of new records merged."""
        self.ticks += 1
        try:
            page = await self.fetcher.fetch_page(self.monitor_id, None, None)
        except ChecksError as e:
            self.failures += 1
            logger.warning("Live tail poll for monitor %s failed: %s", self.monitor_id, e.message)
            return 0
        if not self._is_live():
            return 0
        return self.store.merge(page.records)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self._is_live():
                return
            try:
                added = await self.tick()
            except Exception:
                self.failures += 1
                logger.exception("Live tail poll for monitor %s crashed", self.monitor_id)
                continue
            if added:
                logger.debug("Live tail merged %d new checks for monitor %s", added, self.monitor_id)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"livetail-{self.monitor_id}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
