"""
kcbot.errors — Error Taxonomy
==============================

Every failure the bot surfaces to a caller is one of these kinds:

* :class:`ValidationError` — bad platform / period / limit / user id.
  Raised before any I/O.  HTTP 400.
* :class:`RateLimitError` — a limiter rejected the caller.  HTTP 429.
* :class:`PersistenceError` — the database failed.  The original exception
  is chained and the operation name stays in the server log.  HTTP 500.
* :class:`UpstreamError` — a chat-platform or model-service call failed.
  Command handlers turn it into an apology message.
* :class:`AuthError` — missing or wrong admin token on an admin-only
  route.  HTTP 401, or 403 when no admin token is configured.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def error_envelope(message: str, code: str, status_code: int) -> dict[str, Any]:
    """Standard JSON error body used by every API failure."""
    return {
        "error": {
            "message": message,
            "code": code,
            "timestamp": datetime.now(UTC).isoformat(),
        },
        "statusCode": status_code,
    }


class BotError(Exception):
    """Base class for all errors raised by kcbot."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        return error_envelope(self.message, self.code, self.status_code)


class ValidationError(BotError):
    status_code = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message)
        self.code = code


class RateLimitError(BotError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Rate limit exceeded. Try again in {retry_after} seconds."
        )
        self.retry_after = retry_after


class PersistenceError(BotError):
    """Storage failure wrapped with the name of the failing operation."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Database operation failed: {operation}")
        self.operation = operation

    def to_response(self) -> dict[str, Any]:
        # Operation detail stays in the server log.
        return error_envelope("Internal server error", self.code, self.status_code)


class UpstreamError(BotError):
    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class AuthError(BotError):
    """Missing or wrong admin credentials (401), or admin access disabled (403)."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str, *, forbidden: bool = False) -> None:
        super().__init__(message)
        if forbidden:
            self.status_code = 403
            self.code = "FORBIDDEN"
