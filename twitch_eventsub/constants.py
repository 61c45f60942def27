"""
Configuration constants for the Twitch EventSub HTTP listener

This module contains the wire constants of the EventSub webhook transport and the
tunable defaults used throughout the package. Each tunable can be overridden by
setting an environment variable with the same name.
"""

import logging
import os

logger = logging.getLogger(__name__)


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Attempts to parse the environment variable as an integer. If the variable
    is not set or cannot be parsed, logs a warning and returns the default value.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                f"Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(
                f"Invalid float value for {name}='{value}', using default {default}"
            )
    return default


# Helix REST endpoints
HELIX_BASE_URL = "https://api.twitch.tv/helix"
OAUTH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
EVENTSUB_SUBSCRIPTIONS = "eventsub/subscriptions"

# Inbound webhook headers (aiohttp headers are case-insensitive)
HEADER_MESSAGE_ID = "Twitch-Eventsub-Message-Id"
HEADER_MESSAGE_TYPE = "Twitch-Eventsub-Message-Type"
HEADER_MESSAGE_TIMESTAMP = "Twitch-Eventsub-Message-Timestamp"
HEADER_MESSAGE_SIGNATURE = "Twitch-Eventsub-Message-Signature"
HEADER_SUBSCRIPTION_TYPE = "Twitch-Eventsub-Subscription-Type"
HMAC_PREFIX = "sha256="

# Message types
MESSAGE_TYPE_VERIFICATION = "webhook_callback_verification"
MESSAGE_TYPE_NOTIFICATION = "notification"
MESSAGE_TYPE_REVOCATION = "revocation"

# Remote subscription statuses
REMOTE_STATUS_ENABLED = "enabled"
REMOTE_STATUS_VERIFICATION_PENDING = "webhook_callback_verification_pending"

# Listener defaults
DEFAULT_EXTERNAL_PORT = 443
DEFAULT_LISTENER_PORT = _get_env_int("EVENTSUB_DEFAULT_LISTENER_PORT", 443)
EVENTSUB_HANDLER_TIMEOUT = _get_env_float(
    "EVENTSUB_HANDLER_TIMEOUT", 30.0
)  # Seconds a user callback may run before it is abandoned
EVENTSUB_DEDUP_CACHE_SIZE = _get_env_int(
    "EVENTSUB_DEDUP_CACHE_SIZE", 1000
)  # Number of recent message ids remembered for duplicate suppression
EVENTSUB_MAX_MESSAGE_AGE_SECONDS = _get_env_int(
    "EVENTSUB_MAX_MESSAGE_AGE_SECONDS", 600
)  # Older messages are rejected as replays (10 minutes)
EVENTSUB_LEGACY_REJECTION_STATUS = 410

# Unsubscribe retry policy (transient failures only)
EVENTSUB_UNSUBSCRIBE_MAX_ATTEMPTS = _get_env_int("EVENTSUB_UNSUBSCRIBE_MAX_ATTEMPTS", 3)
EVENTSUB_UNSUBSCRIBE_MAX_WAIT = _get_env_float("EVENTSUB_UNSUBSCRIBE_MAX_WAIT", 5.0)

# App access token refresh
TOKEN_REFRESH_SAFETY_BUFFER_SECONDS = _get_env_int(
    "TOKEN_REFRESH_SAFETY_BUFFER_SECONDS", 300
)  # Subtracted from expires_in to refresh before the token lapses
