"""EventSub error hierarchy for the webhook listener.

This module defines a hierarchy of exceptions specific to the EventSub
subscription lifecycle: registration bookkeeping, challenge verification,
signature checks, payload processing, listener lifecycle and persistence.

All exceptions support additional context parameters for better error tracking and debugging.
"""


class EventSubError(Exception):
    """Base exception for all EventSub-related errors.

    Args:
        message (str): Error message.
        subscription_key (str | None): Optional local subscription key (e.g. ``channel.ban.123``).
        remote_id (str | None): Optional subscription id assigned by Twitch.
        operation_type (str | None): Optional operation type (e.g., 'subscribe', 'verify').

    Example:
        >>> raise EventSubError("Generic error", subscription_key="stream.offline.1", operation_type="subscribe")
    """

    def __init__(
        self,
        message: str,
        subscription_key: str | None = None,
        remote_id: str | None = None,
        operation_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.subscription_key = subscription_key
        self.remote_id = remote_id
        self.operation_type = operation_type


class SubscriptionError(EventSubError):
    """Raised when a subscription cannot be tracked or registered locally.

    Remote rejections are not wrapped in this class; they surface as the
    original :class:`~twitch_eventsub.errors.api.HelixApiError`.
    """


class VerificationError(EventSubError):
    """Raised when a verification challenge does not match a pending subscription."""


class SignatureError(EventSubError):
    """Raised when the HMAC signature or timestamp of a callback is invalid."""


class MessageProcessingError(EventSubError):
    """Raised when an inbound payload is malformed or cannot be transformed.

    Example:
        >>> raise MessageProcessingError("Invalid JSON in body", subscription_key="user.update.1", operation_type="parse_json")
    """


class ListenerStateError(EventSubError):
    """Raised synchronously on lifecycle misuse (double start, stop while stopped)."""


class TransportError(EventSubError):
    """Raised when the listening socket cannot be bound or closed."""


class StoreError(EventSubError):
    """Raised when the subscription store cannot be read or written.

    Example:
        >>> raise StoreError("State file unreadable", operation_type="load_state")
    """
