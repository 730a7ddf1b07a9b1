"""Tests for the monitor view model."""

import asyncio
from datetime import timedelta

from checktail.history import StopReason
from checktail.view import EmptyState, Failed, Idle, Loading, LoadingReason, MonitorView, Streaming
from checktail.windows import DisplayWindow

from tests.conftest import NOW, BlockingBackend, FakeBackend, make_record


def _view(backend, **kwargs) -> MonitorView:
    kwargs.setdefault("live_tail_interval", 3600)
    return MonitorView(backend, "m1", clock=lambda: NOW, **kwargs)


class TestSelectWindow:
    """Tests for MonitorView.select_window."""

    def test_fill_then_stream(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                result = await view.select_window(DisplayWindow.H1)
                return result, view.state, view.tail.running, view.filtered(), view.cursor, len(view.store)

        result, state, tail_running, records, cursor, stored = asyncio.run(scenario())
        assert result.reason is StopReason.WINDOW_COVERED
        assert state == Streaming()
        assert tail_running is True
        assert cursor == "25"
        assert stored == 25
        # 0, 10, ... 60 minutes ago
        assert len(records) == 7
        assert [r.checked_at for r in records] == sorted((r.checked_at for r in records), reverse=True)

    def test_filter_narrows_over_fetched_store(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H24)
                wide = len(view.filtered())
                await view.select_window(DisplayWindow.M15)
                return wide, view.filtered(), len(view.store)

        wide, narrow, stored = asyncio.run(scenario())
        assert wide == 145
        assert [r.id for r in narrow] == [0, 1]
        assert stored == 150
        cutoff = NOW - timedelta(minutes=15)
        assert all(r.checked_at >= cutoff for r in narrow)

    def test_timeline_is_oldest_first(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                return view.timeline(), view.snapshot().timeline

        timeline, snap_timeline = asyncio.run(scenario())
        assert [r.id for r in timeline] == [6, 5, 4, 3, 2, 1, 0]
        assert snap_timeline == timeline

    def test_custom_with_loaded_store_does_not_fetch(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                calls = len(backend.calls)
                result = await view.select_window(DisplayWindow.CUSTOM)
                return result, calls, len(backend.calls), view.state, len(view.filtered())

        result, before, after, state, shown = asyncio.run(scenario())
        assert result is None
        assert before == after
        assert state == Idle()
        assert shown == 25

    def test_failure_keeps_partial_results(self, backend: FakeBackend) -> None:
        backend.fail_on_calls = {3}

        async def scenario():
            async with _view(backend) as view:
                result = await view.select_window(DisplayWindow.D7)
                return result, view.state, len(view.store), view.snapshot()

        result, state, stored, snap = asyncio.run(scenario())
        assert result is None
        assert isinstance(state, Failed)
        assert state.kind == "fetch_failed"
        assert snap.error == "Failed to load checks"
        assert snap.live_tail is False
        assert stored == 50

    def test_reselect_recovers_from_failure(self, backend: FakeBackend) -> None:
        backend.fail_on_calls = {1}

        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                failed = view.state
                await view.reload()
                return failed, view.state

        failed, recovered = asyncio.run(scenario())
        assert isinstance(failed, Failed)
        assert recovered == Streaming()


class TestLoadMore:
    """Tests for MonitorView.load_more."""

    def test_switches_to_custom_and_pauses_live_tail(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                result = await view.load_more()
                return result, view.window, view.state, view.tail.running, view.cursor, len(view.filtered())

        result, window, state, tail_running, cursor, shown = asyncio.run(scenario())
        assert result.added == 25
        assert window is DisplayWindow.CUSTOM
        assert state == Idle()
        assert tail_running is False
        assert cursor == "50"
        assert shown == 50

    def test_returning_to_standard_window_resumes_live_tail(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                await view.load_more()
                await view.select_window(DisplayWindow.H1)
                return view.live_tail, len(view.filtered()), len(view.store)

        live, shown, stored = asyncio.run(scenario())
        assert live is True
        assert shown == 7
        assert stored == 50

    def test_unavailable_without_cursor(self) -> None:
        backend = FakeBackend([make_record(i, i) for i in range(5)])

        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H24)
                calls = len(backend.calls)
                return view.can_load_more, await view.load_more(), calls, len(backend.calls)

        can_load, result, before, after = asyncio.run(scenario())
        assert can_load is False
        assert result is None
        assert before == after


class TestLiveTail:
    """Tests for live tail behaviour through the view."""

    def test_known_ids_leave_view_unchanged(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H6)
                before = (view.filtered(), view.metrics())
                await view.tail.tick()
                await view.tail.tick()
                return before, (view.filtered(), view.metrics())

        before, after = asyncio.run(scenario())
        assert before == after

    def test_toggle(self, backend: FakeBackend) -> None:
        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                off = await view.set_live_tail(False)
                state_off = view.state
                on = await view.set_live_tail(True)
                return off, state_off, on, view.state, view.tail.running

        off, state_off, on, state_on, running = asyncio.run(scenario())
        assert off is False
        assert state_off == Idle()
        assert on is True
        assert state_on == Streaming()
        assert running is True


class TestEmptyStates:
    """Tests for empty-state reporting."""

    def test_no_data_ever(self) -> None:
        async def scenario():
            async with _view(FakeBackend([])) as view:
                await view.select_window(DisplayWindow.H24)
                return view.empty_state(), view.metrics()

        empty, metrics = asyncio.run(scenario())
        assert empty is EmptyState.NO_DATA
        assert metrics.uptime_pct == 0.0
        assert metrics.p50 is None

    def test_no_data_in_window(self) -> None:
        backend = FakeBackend([make_record(i, 2 * 24 * 60 + i) for i in range(10)])

        async def scenario():
            async with _view(backend) as view:
                await view.select_window(DisplayWindow.H1)
                return view.empty_state(), len(view.store)

        empty, stored = asyncio.run(scenario())
        assert empty is EmptyState.NO_DATA_IN_WINDOW
        assert stored == 10


class TestTeardown:
    """Tests for cancellation when the view is closed or superseded."""

    def test_close_mid_fetch_does_not_mutate_store(self, history_records) -> None:
        async def scenario():
            backend = BlockingBackend(history_records)
            view = _view(backend)
            task = asyncio.create_task(view.select_window(DisplayWindow.H24))
            await backend.started.wait()
            assert view.state == Loading(LoadingReason.WINDOW_FILL)
            await view.close()
            backend.release.set()
            result = await task
            await asyncio.sleep(0)
            return result, len(view.store), view.closed, view.tail.running

        result, stored, closed, tail_running = asyncio.run(scenario())
        assert result is None
        assert stored == 0
        assert closed is True
        assert tail_running is False

    def test_closed_view_ignores_actions(self, backend: FakeBackend) -> None:
        async def scenario():
            view = _view(backend)
            await view.close()
            return await view.select_window(DisplayWindow.H1), await view.set_live_tail(True), len(backend.calls)

        assert asyncio.run(scenario()) == (None, False, 0)

    def test_newer_selection_supersedes_pending_load(self, history_records) -> None:
        async def scenario():
            backend = BlockingBackend(history_records)
            async with _view(backend) as view:
                first = asyncio.create_task(view.select_window(DisplayWindow.D7))
                await backend.started.wait()
                second = await view.select_window(DisplayWindow.H1)
                backend.release.set()
                return await first, second, view.window, view.state, len(view.store)

        first, second, window, state, stored = asyncio.run(scenario())
        assert first is None
        assert second.reason is StopReason.WINDOW_COVERED
        assert window is DisplayWindow.H1
        assert state == Streaming()
        assert stored == 25

    def test_superseded_load_crash_is_logged(self, history_records, caplog) -> None:
        class CrashOnCancel(BlockingBackend):
            async def fetch_page(self, monitor_id, cursor=None, since=None):
                try:
                    return await super().fetch_page(monitor_id, cursor, since)
                except asyncio.CancelledError:
                    raise RuntimeError("connection pool closed") from None

        async def scenario():
            backend = CrashOnCancel(history_records)
            view = _view(backend)
            first = asyncio.create_task(view.select_window(DisplayWindow.D7))
            await backend.started.wait()
            await view.close()
            return await first, view.closed

        with caplog.at_level("ERROR", logger="checktail.view"):
            first, closed = asyncio.run(scenario())
        assert first is None
        assert closed is True
        assert any("crashed" in r.getMessage() for r in caplog.records)
