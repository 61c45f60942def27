from __future__ import annotations

import logging
from typing import Any

from ..logging_config import log_structured_error
from .api import HelixApiError, HelixAuthorizationError, HelixRateLimitError, NetworkError
from .eventsub import (
    EventSubError,
    MessageProcessingError,
    SignatureError,
    StoreError,
    TransportError,
    VerificationError,
)


def classify_error(error: BaseException) -> str:
    """Map an exception to the error category used for aggregation."""
    if isinstance(error, NetworkError | OSError | ConnectionError):
        return "network"
    if isinstance(error, HelixAuthorizationError):
        return "auth"
    if isinstance(error, HelixRateLimitError):
        return "ratelimit"
    if isinstance(error, HelixApiError):
        return "api"
    if isinstance(error, SignatureError):
        return "signature"
    if isinstance(error, VerificationError):
        return "verification"
    if isinstance(error, MessageProcessingError):
        return "parsing"
    if isinstance(error, TransportError):
        return "transport"
    if isinstance(error, StoreError):
        return "store"
    if isinstance(error, EventSubError):
        return "eventsub"
    return "unknown"


def log_error(
    message: str,
    error: BaseException,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Logs an error message with the associated exception details.

    Args:
        message: A descriptive message about the error context.
        error: The exception instance to be logged.
        context: Optional additional context data for debugging.
        level: Logging level, ERROR unless the caller knows better.
    """
    log_structured_error(
        error_type=classify_error(error),
        message=f"{message}: {str(error)}",
        exception=error,
        context=context,
        level=level,
    )
