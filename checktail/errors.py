from __future__ import annotations


class ChecksError(Exception):
    """Base class for recoverable errors raised while loading check logs."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthUnavailable(ChecksError):
    kind = "auth_unavailable"


class FetchFailed(ChecksError):
    kind = "fetch_failed"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(ChecksError):
    kind = "malformed_response"
