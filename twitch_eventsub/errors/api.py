"""Typed Helix API error hierarchy.

Raised by :class:`~twitch_eventsub.api.helix.HelixClient`. Never surface raw
aiohttp / JSON errors to callers; wrap them instead.

Classes:
  HelixApiError            – Non-2xx response from Helix.
  HelixAuthorizationError  – 401/403: missing or invalid token or scope.
  HelixNotFoundError       – 404: resource does not exist.
  HelixConflictError       – 409: resource already exists.
  HelixRateLimitError      – 429: rate limited by the remote service.
  NetworkError             – Transport level failure (safe to retry).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class HelixApiError(Exception):
    """Exception raised for non-successful Helix responses.

    Attributes:
        status: HTTP status code returned by Helix.
        endpoint: Endpoint path (without base URL).
        body: Parsed JSON error body, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        endpoint: str,
        body: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.body = dict(body) if body else {}


class HelixAuthorizationError(HelixApiError):
    """Raised for 401/403 responses (token invalid or scope missing)."""


class HelixNotFoundError(HelixApiError):
    """Raised for 404 responses."""


class HelixConflictError(HelixApiError):
    """Raised for 409 responses, e.g. an identical subscription already exists."""


class HelixRateLimitError(HelixApiError):
    """Raised for 429 responses.

    Attributes:
        reset_at: Epoch seconds from the ``Ratelimit-Reset`` header, if present.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        endpoint: str,
        body: Mapping[str, Any] | None = None,
        reset_at: int | None = None,
    ) -> None:
        super().__init__(message, status=status, endpoint=endpoint, body=body)
        self.reset_at = reset_at


class NetworkError(Exception):
    """Exception raised for network or transport layer errors.

    This includes connection resets, DNS failures and timeouts that may be retried.
    """


_STATUS_ERRORS: dict[int, type[HelixApiError]] = {
    401: HelixAuthorizationError,
    403: HelixAuthorizationError,
    404: HelixNotFoundError,
    409: HelixConflictError,
}


def error_for_status(
    status: int,
    endpoint: str,
    body: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> HelixApiError:
    """Build the typed error matching an HTTP status."""
    detail = ""
    if body and isinstance(body.get("message"), str):
        detail = f": {body['message']}"
    message = f"Helix {endpoint} failed with HTTP {status}{detail}"
    if status == 429:
        reset = (headers or {}).get("Ratelimit-Reset")
        reset_at = int(reset) if reset and reset.isdigit() else None
        return HelixRateLimitError(
            message, status=status, endpoint=endpoint, body=body, reset_at=reset_at
        )
    cls = _STATUS_ERRORS.get(status, HelixApiError)
    return cls(message, status=status, endpoint=endpoint, body=body)


__all__ = [
    "HelixApiError",
    "HelixAuthorizationError",
    "HelixNotFoundError",
    "HelixConflictError",
    "HelixRateLimitError",
    "NetworkError",
    "error_for_status",
]
