from __future__ import annotations

from .base import BroadcasterEventMixin, EventSubEvent


class EventSubStreamOfflineEvent(BroadcasterEventMixin, EventSubEvent):
    """A stream going offline. Carries only the broadcaster."""
