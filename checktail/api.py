"""HTTP adapter for the paginated checks endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx

from .auth import TokenProvider, acquire_token
from .errors import FetchFailed, MalformedResponse
from .store import CheckRecord, parse_records
from .timeutil import to_iso

logger = logging.getLogger(__name__)

NEXT_CURSOR_HEADER = "X-Next-Cursor"
DEFAULT_ERROR = "Failed to load checks"


@dataclass(frozen=True)
class Page:
    records: list[CheckRecord] = field(default_factory=list)
    next_cursor: str | None = None

    def __len__(self) -> int:
        return len(self.records)

    def oldest(self) -> CheckRecord | None:
        if not self.records:
            return None
        return min(self.records, key=lambda r: r.checked_at)


class PageFetcher(Protocol):
    async def fetch_page(
        self,
        monitor_id: str,
        cursor: str | None = None,
        since: datetime | None = None,
    ) -> Page: ...


def parse_page(payload: Any, header_cursor: str | None) -> Page:
    """Build a Page from either a bare record array or a ``{data, nextCursor}`` object."""
    cursor = header_cursor or None
    if payload is None:
        return Page(records=[], next_cursor=cursor)
    if isinstance(payload, dict):
        items = payload.get("data")
        if items is None:
            items = []
        body_cursor = payload.get("nextCursor", payload.get("next_cursor"))
        if body_cursor:
            cursor = str(body_cursor)
    else:
        items = payload
    if not isinstance(items, list):
        raise MalformedResponse(f"expected a list of checks, got {type(items).__name__}")
    return Page(records=parse_records(items), next_cursor=cursor)


class ChecksClient:
    """Single-page fetches against ``/api/v1/monitors/{id}/checks``."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, token_provider: TokenProvider) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider

    def checks_url(self, monitor_id: str) -> str:
        return f"{self._base_url}/api/v1/monitors/{monitor_id}/checks"

    async def fetch_page(
        self,
        monitor_id: str,
        cursor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Page:
        token = await acquire_token(self._token_provider)

        params: dict[str, str] = {}
        if cursor:
            params["cursor"] = cursor
        # The backend may ignore these; callers re-check the window themselves.
        if since is not None:
            params["from"] = to_iso(since)
        if until is not None:
            params["to"] = to_iso(until)

        try:
            resp = await self._client.get(
                self.checks_url(monitor_id),
                params=params,
                headers={"Authorization": f"Bearer {token}", "Cache-Control": "no-store"},
            )
        except httpx.HTTPError as e:
            logger.warning("Checks request for monitor %s failed: %s", monitor_id, e)
            raise FetchFailed(f"{DEFAULT_ERROR}: {type(e).__name__}") from e

        if not resp.is_success:
            raise FetchFailed(_error_message(resp), status_code=resp.status_code)

        header_cursor = resp.headers.get(NEXT_CURSOR_HEADER)
        try:
            return parse_page(resp.json(), header_cursor)
        except (ValueError, MalformedResponse) as e:
            logger.warning("Malformed checks payload for monitor %s: %s", monitor_id, e)
            return Page()


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return DEFAULT_ERROR
    if isinstance(data, dict):
        msg = str(data.get("error") or "").strip()
        if msg:
            return msg
    return DEFAULT_ERROR


def build_http_client(timeout_seconds: float, user_agent: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds, connect=5.0),
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        follow_redirects=True,
    )
