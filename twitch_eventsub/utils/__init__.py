"""Small shared helpers."""

from .retry import TRANSIENT_ERRORS, retry_transient

__all__ = ["TRANSIENT_ERRORS", "retry_transient"]
