from .api import (
    HelixApiError,
    HelixAuthorizationError,
    HelixConflictError,
    HelixNotFoundError,
    HelixRateLimitError,
    NetworkError,
)
from .eventsub import (
    EventSubError,
    ListenerStateError,
    MessageProcessingError,
    SignatureError,
    StoreError,
    SubscriptionError,
    TransportError,
    VerificationError,
)

__all__ = [
    "EventSubError",
    "ListenerStateError",
    "MessageProcessingError",
    "SignatureError",
    "StoreError",
    "SubscriptionError",
    "TransportError",
    "VerificationError",
    "HelixApiError",
    "HelixAuthorizationError",
    "HelixConflictError",
    "HelixNotFoundError",
    "HelixRateLimitError",
    "NetworkError",
]
