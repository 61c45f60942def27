"""EventSub webhook listener: subscriptions, dispatch and HTTP front-end."""

from .adapters import (
    ConnectionAdapter,
    DirectConnectionAdapter,
    EnvPortAdapter,
    ReverseProxyAdapter,
)
from .dedup import RecentMessageCache
from .http_listener import EventSubHttpListener, LifecycleResult
from .kinds import EVENT_CLASSES, EVENT_KINDS, EventKind, get_event_kind
from .listener import DispatchResult, EventSubListener
from .signature import compute_signature, is_timestamp_fresh, verify_signature
from .store import (
    JsonFileSubscriptionStore,
    MemorySubscriptionStore,
    SubscriptionRecord,
    SubscriptionStore,
)
from .subscription import EventHandler, EventSubSubscription, SubscriptionStatus

__all__ = [
    "ConnectionAdapter",
    "DirectConnectionAdapter",
    "DispatchResult",
    "EVENT_CLASSES",
    "EVENT_KINDS",
    "EnvPortAdapter",
    "EventHandler",
    "EventKind",
    "EventSubHttpListener",
    "EventSubListener",
    "EventSubSubscription",
    "JsonFileSubscriptionStore",
    "LifecycleResult",
    "MemorySubscriptionStore",
    "RecentMessageCache",
    "ReverseProxyAdapter",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "SubscriptionStore",
    "compute_signature",
    "get_event_kind",
    "is_timestamp_fresh",
    "verify_signature",
]
