"""Twitch EventSub webhook listener built on aiohttp."""

from .api import AppTokenProvider, HelixClient, StaticTokenProvider
from .config import DirectConnectionAdapterConfig, ListenerConfig, ReverseProxyAdapterConfig
from .eventsub import (
    DirectConnectionAdapter,
    EnvPortAdapter,
    EventSubHttpListener,
    EventSubListener,
    EventSubSubscription,
    JsonFileSubscriptionStore,
    MemorySubscriptionStore,
    ReverseProxyAdapter,
    SubscriptionStatus,
)

__version__ = "1.0.0"

__all__ = [
    "AppTokenProvider",
    "DirectConnectionAdapter",
    "DirectConnectionAdapterConfig",
    "EnvPortAdapter",
    "EventSubHttpListener",
    "EventSubListener",
    "EventSubSubscription",
    "HelixClient",
    "JsonFileSubscriptionStore",
    "ListenerConfig",
    "MemorySubscriptionStore",
    "ReverseProxyAdapter",
    "ReverseProxyAdapterConfig",
    "StaticTokenProvider",
    "SubscriptionStatus",
]
