from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .auth import TokenProvider, env_token, file_token
from .history import DEFAULT_MAX_AUTO_FETCH
from .livetail import DEFAULT_INTERVAL_SECONDS
from .windows import DisplayWindow


@dataclass(frozen=True)
class MonitorConfig:
    id: str
    name: str


@dataclass(frozen=True)
class AppConfig:
    api_base_url: str
    token_env: str
    token_file: Path | None
    live_tail_interval_seconds: float
    max_auto_fetch: int
    default_window: DisplayWindow
    request_timeout_seconds: float
    monitors: list[MonitorConfig]

    def token_provider(self) -> TokenProvider:
        if self.token_file is not None:
            return file_token(self.token_file)
        return env_token(self.token_env)

    def monitor_name(self, monitor_id: str) -> str:
        for m in self.monitors:
            if m.id == monitor_id:
                return m.name
        return monitor_id

    def resolve_monitor(self, ref: str | None) -> str:
        """Map a monitor id or configured name to an id."""
        if ref:
            r = ref.strip()
            for m in self.monitors:
                if r in {m.id, m.name}:
                    return m.id
            return r
        if not self.monitors:
            raise ValueError("No monitor given and config has no 'monitors' list.")
        return self.monitors[0].id


def _positive(raw: dict[str, Any], key: str, default: float) -> float:
    try:
        value = float(raw.get(key, default))
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be a number.") from None
    if value <= 0:
        raise ValueError(f"'{key}' must be positive.")
    return value


def load_config(path: Path) -> AppConfig:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Config must be a JSON object.")

    api_base_url = str(raw.get("api_base_url", "")).strip().rstrip("/")
    if not api_base_url:
        raise ValueError("Config must include 'api_base_url'.")

    token_env = str(raw.get("token_env") or "CHECKTAIL_TOKEN").strip()
    token_file: Path | None = None
    if raw.get("token_file"):
        token_file = Path(str(raw["token_file"]))
        if not token_file.is_absolute():
            token_file = (path.parent / token_file).resolve()

    live_tail_interval_seconds = _positive(raw, "live_tail_interval_seconds", DEFAULT_INTERVAL_SECONDS)
    max_auto_fetch = int(_positive(raw, "max_auto_fetch", DEFAULT_MAX_AUTO_FETCH))
    request_timeout_seconds = _positive(raw, "request_timeout_seconds", 10.0)
    default_window = DisplayWindow.parse(str(raw.get("default_window", "24h")))

    monitors_raw = raw.get("monitors", [])
    if not isinstance(monitors_raw, list):
        raise ValueError("'monitors' must be a list.")

    monitors: list[MonitorConfig] = []
    for i, mon in enumerate(monitors_raw):
        if not isinstance(mon, dict):
            raise ValueError(f"Monitor config at index {i} must be an object.")
        mid = str(mon.get("id", "")).strip()
        if not mid:
            raise ValueError(f"Monitor config at index {i} must include 'id'.")
        name = str(mon.get("name", "")).strip() or mid
        monitors.append(MonitorConfig(id=mid, name=name))

    return AppConfig(
        api_base_url=api_base_url,
        token_env=token_env,
        token_file=token_file,
        live_tail_interval_seconds=live_tail_interval_seconds,
        max_auto_fetch=max_auto_fetch,
        default_window=default_window,
        request_timeout_seconds=request_timeout_seconds,
        monitors=monitors,
    )
