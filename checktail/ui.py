from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import sys
from collections.abc import Awaitable
from datetime import datetime, timedelta
from pathlib import Path

from rich import box
from rich.align import Align
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from . import __version__
from .api import ChecksClient, build_http_client
from .config import load_config
from .metrics import Metrics, format_ms
from .store import CheckRecord
from .view import Failed, Loading, MonitorView, Streaming, ViewSnapshot
from .windows import STANDARD_WINDOWS, DisplayWindow

logger = logging.getLogger(__name__)

AMBER = "rgb(255,176,0)"
DIM_AMBER = "rgb(160,110,0)"
GREEN = "rgb(0,255,0)"
RED = "rgb(255,80,80)"
MATRIX_GREEN = "rgb(80,255,140)"

# Panel is 80 cols wide. With a 1-col left/right padding and a 1-col border on each side,
# the usable width for single-line content is 76.
INNER_WIDTH = 76
SPARK_WIDTH = 60

COL_STATUS = 6
COL_CODE = 6
COL_LATENCY = 10
COL_SEP = "│"

WINDOW_KEYS: dict[str, DisplayWindow] = {str(i + 1): w for i, w in enumerate(STANDARD_WINDOWS)}
WINDOW_KEYS["0"] = DisplayWindow.CUSTOM


def _truncate(s: str, n: int) -> str:
    s = s.replace("\n", " ").strip()
    if len(s) <= n:
        return s
    return s[: max(0, n - 1)] + "…"


def _fit(s: str, width: int, *, align: str = "left") -> str:
    s = _truncate(s, width)
    if align == "right":
        return s.rjust(width)
    return s.ljust(width)


def _fit_text(text: Text, width: int, *, align: str = "left") -> Text:
    t = text.copy()
    t.truncate(width, overflow="ellipsis")
    pad = width - len(t.plain)
    if pad <= 0:
        return t
    if align == "right":
        return Text(" " * pad) + t
    t.append(" " * pad)
    return t


def _status_chip(is_up: bool) -> Text:
    return Text("● UP" if is_up else "● DOWN", style=GREEN if is_up else RED)


def _uptime_style(pct: float) -> str:
    if pct < 70:
        return RED
    if pct < 99.5:
        return AMBER
    return GREEN


def _uptime_bar(ratio: float | None, width: int = 12) -> Text:
    if ratio is None:
        return Text(" " * width, style=DIM_AMBER)
    filled = int(round(ratio * width))
    filled = max(0, min(width, filled))
    bar = "█" * filled + "░" * (width - filled)
    return Text(bar, style=_uptime_style(ratio * 100))


def _span(snap: ViewSnapshot) -> tuple[datetime, datetime]:
    end = snap.taken_at
    start = snap.window.cutoff(end)
    if start is None:
        start = snap.records[-1].checked_at if snap.records else end - timedelta(hours=1)
    return start, end


def _bucket_index(ts: datetime, start: datetime, end: datetime, buckets: int) -> int | None:
    span = (end - start).total_seconds()
    if span <= 0:
        return buckets - 1
    offset = (ts - start).total_seconds()
    if offset < 0:
        return None
    return min(buckets - 1, int(offset / span * buckets))


def _bucket_latency(timeline: list[CheckRecord], start: datetime, end: datetime, buckets: int) -> list[float | None]:
    values: list[float | None] = [None] * buckets
    for r in timeline:
        if r.response_time_ms is None or r.response_time_ms < 0:
            continue
        idx = _bucket_index(r.checked_at, start, end, buckets)
        if idx is None:
            continue
        prev = values[idx]
        values[idx] = float(r.response_time_ms) if prev is None else max(prev, float(r.response_time_ms))
    return values


def _bucket_status(timeline: list[CheckRecord], start: datetime, end: datetime, buckets: int) -> list[int | None]:
    # per bucket: 0 all up, 1 mixed, 2 all down
    ups: list[int] = [0] * buckets
    downs: list[int] = [0] * buckets
    for r in timeline:
        idx = _bucket_index(r.checked_at, start, end, buckets)
        if idx is None:
            continue
        if r.is_up:
            ups[idx] += 1
        else:
            downs[idx] += 1
    out: list[int | None] = []
    for u, d in zip(ups, downs):
        if u == 0 and d == 0:
            out.append(None)
        elif d == 0:
            out.append(0)
        elif u == 0:
            out.append(2)
        else:
            out.append(1)
    return out


def _status_spark(values: list[int | None]) -> Text:
    out = Text()
    for v in values:
        if v is None:
            out.append("·", style=DIM_AMBER)
        elif v == 0:
            out.append("▁", style=GREEN)
        elif v == 1:
            out.append("▄", style=AMBER)
        else:
            out.append("█", style=RED)
    return out


def _value_spark(values: list[float | None], *, scale: float, style: str) -> Text:
    blocks = "▁▂▃▄▅▆▇█"
    out = Text()
    if not any(v is not None for v in values):
        return Text("·" * len(values), style=DIM_AMBER)
    for v in values:
        if v is None:
            out.append("·", style=DIM_AMBER)
            continue
        idx = int(round(v / max(scale, 1.0) * (len(blocks) - 1)))
        idx = max(0, min(len(blocks) - 1, idx))
        out.append(blocks[idx], style=style)
    return out


def _render_metrics(m: Metrics) -> Text:
    line = Text()
    line.append("Uptime ", style=DIM_AMBER)
    line.append(f"{m.uptime_pct:.2f}%", style=f"bold {_uptime_style(m.uptime_pct)}")
    line.append(" ")
    line.append_text(_uptime_bar(m.uptime_pct / 100 if m.total else None, width=10))
    for label, value in (("P50", m.p50), ("P75", m.p75), ("P99", m.p99), ("P100", m.p100)):
        line.append(f"  {label} ", style=DIM_AMBER)
        line.append(format_ms(value), style=AMBER)
    return _fit_text(line, INNER_WIDTH)


def _render_table(records: list[CheckRecord], limit: int) -> Group:
    header = Text.assemble(
        (_fit("Status", COL_STATUS + 2), f"bold {AMBER}"),
        (COL_SEP, DIM_AMBER),
        (_fit("HTTP", COL_CODE, align="right"), f"bold {AMBER}"),
        (COL_SEP, DIM_AMBER),
        (_fit("Response", COL_LATENCY, align="right"), f"bold {AMBER}"),
        (COL_SEP, DIM_AMBER),
        (" Checked At", f"bold {AMBER}"),
    )
    lines: list[Text] = [header, Text("─" * INNER_WIDTH, style=DIM_AMBER)]
    sep = Text(COL_SEP, style=DIM_AMBER)
    for i, r in enumerate(records[:limit]):
        code = str(r.status_code) if r.status_code else "—"
        ts = r.checked_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        line = (
            _fit_text(_status_chip(r.is_up), COL_STATUS + 2)
            + sep
            + Text(_fit(code, COL_CODE, align="right"), style=AMBER)
            + sep
            + Text(_fit(format_ms(r.response_time_ms), COL_LATENCY, align="right"), style=AMBER)
            + sep
            + Text(f" {ts}", style=DIM_AMBER)
        )
        if i % 2 == 1:
            line.stylize("on rgb(18,10,0)")
        lines.append(_fit_text(line, INNER_WIDTH))
    if len(records) > limit:
        lines.append(Text(_fit(f"… {len(records) - limit} more", INNER_WIDTH), style=DIM_AMBER))
    return Group(*lines)


def _state_text(snap: ViewSnapshot) -> Text:
    state = snap.state
    if isinstance(state, Loading):
        return Text(_truncate(snap.loading_message, 40), style=AMBER)
    if isinstance(state, Streaming):
        return Text("● LIVE", style=MATRIX_GREEN)
    if isinstance(state, Failed):
        return Text(f"ERR {state.kind}", style=RED)
    return Text("PAUSED", style=DIM_AMBER)


def _render_screen(*, name: str, snap: ViewSnapshot, show_table: bool, table_rows: int) -> Panel:
    now_local = snap.taken_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    header1 = Text(_fit(f"CheckTail  {name}  now {now_local}", INNER_WIDTH), style=f"bold {AMBER}")

    header2 = Text()
    for key, w in WINDOW_KEYS.items():
        style = f"bold reverse {AMBER}" if w is snap.window else DIM_AMBER
        header2.append(f"{key}:{w.key}", style=style)
        header2.append(" ")
    header2.append(" ")
    header2.append_text(_state_text(snap))
    header2 = _fit_text(header2, INNER_WIDTH)

    body: list[Text | Group] = []
    if snap.error:
        body.append(Text(_fit(f"! {snap.error}", INNER_WIDTH), style=RED))

    if snap.records:
        start, end = _span(snap)
        timeline = snap.timeline
        m = snap.metrics
        body.append(_render_metrics(m))
        latency = _value_spark(
            _bucket_latency(timeline, start, end, SPARK_WIDTH), scale=float(m.max_response_ms), style=AMBER
        )
        body.append(Text("Latency  ", style=DIM_AMBER) + latency)
        body.append(Text("Status   ", style=DIM_AMBER) + _status_spark(_bucket_status(timeline, start, end, SPARK_WIDTH)))
        body.append(
            Text(
                _fit(f"{len(snap.records)} checks in view, {snap.stored} loaded, max {format_ms(m.max_response_ms)}", INNER_WIDTH),
                style=DIM_AMBER,
            )
        )
        if show_table:
            body.append(_render_table(snap.records, table_rows))
    elif not snap.loading:
        msg = "No logs available for this period." if snap.stored else "No checks recorded for this monitor yet."
        body.append(Text(_fit(msg, INNER_WIDTH), style=DIM_AMBER))

    hints = "1-6 window  0 all  l live  t table  r reload  q quit"
    if snap.can_load_more:
        hints = "m older  " + hints
    footer = Text(_fit(hints, INNER_WIDTH), style=DIM_AMBER)

    border_style = MATRIX_GREEN
    if snap.error or (snap.records and snap.records[0].is_up is False):
        border_style = RED
    elif snap.loading:
        border_style = AMBER
    elif not snap.live_tail:
        border_style = DIM_AMBER

    content = Group(header1, header2, *body, footer)
    return Panel(content, border_style=border_style, box=box.DOUBLE, padding=(0, 1))


def _terminal_ok() -> tuple[bool, str]:
    size = shutil.get_terminal_size(fallback=(80, 25))
    if size.columns < 80 or size.lines < 25:
        return False, f"Terminal is {size.columns}x{size.lines}; need at least 80x25."
    return True, f"Terminal {size.columns}x{size.lines}"


def _table_rows() -> int:
    size = shutil.get_terminal_size(fallback=(80, 25))
    # Outer border 2, headers 2, error 1, metrics + sparks + summary 4, table header 2, footer 1.
    overhead = 2 + 2 + 1 + 4 + 2 + 1
    return max(1, size.lines - overhead)


async def run_dashboard(
    *,
    config_path: Path,
    monitor: str | None,
    window: DisplayWindow | None,
    screen: bool,
    once: bool,
) -> None:
    cfg = load_config(config_path)
    monitor_id = cfg.resolve_monitor(monitor)
    name = cfg.monitor_name(monitor_id)

    async with build_http_client(cfg.request_timeout_seconds, f"checktail/{__version__}") as client:
        console = Console(
            width=80,
            color_system="truecolor",
            force_terminal=True,
            style=f"{AMBER} on black",
        )

        ok, term_msg = _terminal_ok()
        if not ok and not once:
            console.print(Panel(Text(term_msg, style=AMBER), border_style=AMBER, box=box.DOUBLE))
            console.print("Resize your terminal, then re-run `python3 -m checktail`.")
            return

        fetcher = ChecksClient(client, cfg.api_base_url, cfg.token_provider())
        view = MonitorView(
            fetcher,
            monitor_id,
            max_auto_fetch=cfg.max_auto_fetch,
            live_tail_interval=cfg.live_tail_interval_seconds,
        )
        actions: set[asyncio.Task[object]] = set()

        def _finished(task: asyncio.Task[object]) -> None:
            actions.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error("Dashboard action failed", exc_info=task.exception())

        def spawn(coro: Awaitable[object]) -> None:
            task = asyncio.ensure_future(coro)
            actions.add(task)
            task.add_done_callback(_finished)

        if once:
            await view.select_window(window or cfg.default_window)
        else:
            spawn(view.select_window(window or cfg.default_window))

        loop = asyncio.get_running_loop()
        key_queue: asyncio.Queue[str] = asyncio.Queue()
        show_table = False

        fd: int | None = None
        old_termios: list[int] | None = None

        def _enable_keys() -> None:
            nonlocal fd, old_termios
            if not sys.stdin.isatty():
                return
            try:
                import termios
                import tty

                fd = sys.stdin.fileno()
                old_termios = termios.tcgetattr(fd)
                tty.setcbreak(fd)

                def _on_stdin() -> None:
                    try:
                        ch = sys.stdin.read(1)
                    except OSError:
                        return
                    if ch:
                        key_queue.put_nowait(ch)

                loop.add_reader(fd, _on_stdin)
            except (ImportError, OSError):
                fd = None
                old_termios = None

        def _disable_keys() -> None:
            nonlocal fd, old_termios
            if fd is None:
                return
            try:
                import termios

                loop.remove_reader(fd)
                if old_termios is not None:
                    termios.tcsetattr(fd, termios.TCSADRAIN, old_termios)
            finally:
                fd = None
                old_termios = None

        try:
            if not once:
                _enable_keys()
            with Live(
                console=console,
                screen=screen,
                auto_refresh=False,
                refresh_per_second=4,
                transient=False,
            ) as live:
                while True:
                    # Handle keypresses without blocking rendering.
                    while True:
                        try:
                            ch = key_queue.get_nowait()
                        except asyncio.QueueEmpty:
                            break
                        ch = ch.lower()
                        if ch in {"q", "\u0003"}:
                            return
                        if ch in WINDOW_KEYS:
                            spawn(view.select_window(WINDOW_KEYS[ch]))
                        elif ch == "r":
                            spawn(view.reload())
                        elif ch == "m":
                            spawn(view.load_more())
                        elif ch == "l":
                            spawn(view.set_live_tail(not view.live_tail))
                        elif ch == "t":
                            show_table = not show_table

                    frame = Align.center(
                        _render_screen(name=name, snap=view.snapshot(), show_table=show_table, table_rows=_table_rows()),
                        vertical="top",
                    )
                    live.update(frame, refresh=True)
                    if once:
                        break
                    await asyncio.sleep(0.5)
        finally:
            with contextlib.suppress(OSError):
                _disable_keys()
            for task in list(actions):
                task.cancel()
            await view.close()
            if actions:
                await asyncio.gather(*actions, return_exceptions=True)
