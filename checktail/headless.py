from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from . import __version__
from .api import ChecksClient, build_http_client
from .config import load_config
from .history import LoadResult
from .metrics import Metrics, format_ms
from .store import CheckRecord
from .timeutil import to_iso
from .view import MonitorView, ViewSnapshot
from .windows import DisplayWindow

logger = logging.getLogger(__name__)


def format_metrics(m: Metrics) -> str:
    return (
        f"uptime {m.uptime_pct:.2f}% ({m.up}/{m.total})  "
        f"p50 {format_ms(m.p50)} p75 {format_ms(m.p75)} p99 {format_ms(m.p99)} p100 {format_ms(m.p100)}"
    )


def format_record(r: CheckRecord) -> str:
    ts = r.checked_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    state = "UP  " if r.is_up else "DOWN"
    code = str(r.status_code) if r.status_code is not None else "—"
    return f"{ts}  {state}  {code:>3}  {format_ms(r.response_time_ms)}"


def snapshot_to_dict(snap: ViewSnapshot, result: LoadResult | None) -> dict[str, Any]:
    m = snap.metrics
    return {
        "monitor_id": snap.monitor_id,
        "window": snap.window.key,
        "taken_at": to_iso(snap.taken_at),
        "error": snap.error,
        "empty": snap.empty.value,
        "stop_reason": result.reason.value if result else None,
        "cursor": result.cursor if result else None,
        "metrics": {
            "total": m.total,
            "up": m.up,
            "uptime_pct": m.uptime_pct,
            "p50": m.p50,
            "p75": m.p75,
            "p99": m.p99,
            "p100": m.p100,
        },
        "checks": [
            {
                "id": r.id,
                "checked_at": to_iso(r.checked_at),
                "is_up": r.is_up,
                "status_code": r.status_code,
                "response_time_ms": r.response_time_ms,
            }
            for r in snap.records
        ],
    }


async def run_fetch(
    *,
    config_path: Path,
    monitor: str | None,
    window: DisplayWindow | None,
    as_json: bool,
    follow: bool,
) -> int:
    cfg = load_config(config_path)
    monitor_id = cfg.resolve_monitor(monitor)
    name = cfg.monitor_name(monitor_id)

    async with build_http_client(cfg.request_timeout_seconds, f"checktail/{__version__}") as client:
        fetcher = ChecksClient(client, cfg.api_base_url, cfg.token_provider())
        async with MonitorView(
            fetcher,
            monitor_id,
            max_auto_fetch=cfg.max_auto_fetch,
            live_tail_interval=cfg.live_tail_interval_seconds,
        ) as view:
            result = await view.select_window(window or cfg.default_window)
            snap = view.snapshot()

            if as_json:
                print(json.dumps(snapshot_to_dict(snap, result), indent=2), flush=True)
            else:
                ts = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")
                if snap.error:
                    print(f"{ts} {name} [{snap.window.key}] error: {snap.error}", flush=True)
                else:
                    msg = f"{ts} {name} [{snap.window.key}] {format_metrics(snap.metrics)}"
                    if result is not None:
                        msg += f"; {result.pages} page(s), stopped: {result.reason.value}"
                    if snap.can_load_more:
                        msg += "; older history available"
                    print(msg, flush=True)

            if snap.error:
                return 1
            if not follow:
                return 0

            await view.set_live_tail(True)
            seen = {r.id for r in snap.records}
            for r in reversed(snap.records[:10]):
                print(format_record(r), flush=True)
            while True:
                await asyncio.sleep(cfg.live_tail_interval_seconds)
                fresh = [r for r in view.snapshot().records if r.id not in seen]
                for r in reversed(fresh):
                    seen.add(r.id)
                    print(format_record(r), flush=True)
