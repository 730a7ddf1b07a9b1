from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from .errors import AuthUnavailable

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


def static_token(token: str) -> TokenProvider:
    async def _provider() -> str | None:
        return token

    return _provider


def env_token(name: str) -> TokenProvider:
    async def _provider() -> str | None:
        return os.environ.get(name, "").strip() or None

    return _provider


def file_token(path: Path) -> TokenProvider:
    # Re-read on every call so an external process can rotate the token.
    async def _provider() -> str | None:
        return path.read_text(encoding="utf-8").strip() or None

    return _provider


async def acquire_token(provider: TokenProvider, *, attempts: int = 2) -> str:
    """Fetch a bearer token, retrying once before giving up."""
    last_error: str = "no token returned"
    for attempt in range(1, attempts + 1):
        try:
            token = await provider()
        except Exception as e:
            last_error = f"{type(e).__name__}: {e}"
            logger.warning("Token provider failed (attempt %d/%d): %s", attempt, attempts, last_error)
            continue
        if token:
            return token
        logger.warning("Token provider returned no token (attempt %d/%d)", attempt, attempts)
    raise AuthUnavailable(f"Unable to get auth token ({last_error})")
