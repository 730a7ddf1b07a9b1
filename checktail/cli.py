from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from .headless import run_fetch
from .ui import run_dashboard
from .windows import DisplayWindow


def _window(value: str) -> DisplayWindow:
    try:
        return DisplayWindow.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="checktail",
        description="Browse and live-tail uptime monitor check logs in the terminal.",
    )
    parser.add_argument(
        "--config",
        default="checktail.json",
        help="Path to config JSON (default: checktail.json).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING, or ERROR while the full-screen dashboard runs).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write logs to this file instead of stderr.",
    )

    sub = parser.add_subparsers(dest="cmd", required=False)

    run = sub.add_parser("run", help="Run the live dashboard (default).")
    run.add_argument("monitor", nargs="?", help="Monitor id or configured name (default: first configured).")
    run.add_argument("--window", type=_window, default=None, help="Initial window: 15m, 1h, 6h, 24h, 7d, 30d, all.")
    run.add_argument(
        "--no-screen",
        action="store_true",
        help="Disable alternate-screen mode (useful for logs).",
    )
    run.add_argument(
        "--once",
        action="store_true",
        help="Load the window, render one frame and exit.",
    )

    fetch = sub.add_parser("fetch", help="Load a window once and print a summary (no UI).")
    fetch.add_argument("monitor", nargs="?", help="Monitor id or configured name (default: first configured).")
    fetch.add_argument("--window", type=_window, default=None, help="Window: 15m, 1h, 6h, 24h, 7d, 30d, all.")
    output = fetch.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Print the checks and metrics as JSON.")
    output.add_argument("--follow", action="store_true", help="Keep live-tailing and print new checks.")

    return parser


def _setup_logging(level: str, log_file: str | None) -> None:
    kwargs: dict[str, object] = {
        "level": getattr(logging, level),
        "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
    }
    if log_file:
        kwargs["filename"] = log_file
    logging.basicConfig(**kwargs)  # type: ignore[arg-type]
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.exists():
        parser.error(f"Config file not found: {config_path}")

    cmd = args.cmd or "run"
    level = args.log_level
    if level is None:
        # The dashboard owns the terminal, so keep log output out of it unless asked.
        screen = cmd == "run" and not args.log_file and not getattr(args, "no_screen", False)
        level = "ERROR" if screen else "WARNING"
    _setup_logging(level, args.log_file)

    try:
        if cmd == "run":
            asyncio.run(
                run_dashboard(
                    config_path=config_path,
                    monitor=getattr(args, "monitor", None),
                    window=getattr(args, "window", None),
                    screen=not getattr(args, "no_screen", False),
                    once=getattr(args, "once", False),
                )
            )
            return 0
        if cmd == "fetch":
            return asyncio.run(
                run_fetch(
                    config_path=config_path,
                    monitor=args.monitor,
                    window=args.window,
                    as_json=args.json,
                    follow=args.follow,
                )
            )
    except ValueError as e:
        parser.error(str(e))
    except KeyboardInterrupt:
        return 130

    parser.error(f"Unknown command: {cmd}")
    return 2
