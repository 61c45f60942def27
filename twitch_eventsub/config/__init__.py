from .model import (
    DirectConnectionAdapterConfig,
    ListenerConfig,
    ReverseProxyAdapterConfig,
    ServiceSettings,
    normalize_path_prefix,
)

__all__ = [
    "DirectConnectionAdapterConfig",
    "ListenerConfig",
    "ReverseProxyAdapterConfig",
    "ServiceSettings",
    "normalize_path_prefix",
]
