from .base import EventSubEvent
from .channel import (
    CharityAmount,
    EventSubChannelBanEvent,
    EventSubChannelCharityCampaignProgressEvent,
    EventSubChannelHypeTrainProgressEvent,
    EventSubChannelRaidEvent,
    EventSubChannelRedemptionAddEvent,
    EventSubChannelSubscriptionEvent,
    HypeTrainContribution,
)
from .stream import EventSubStreamOfflineEvent
from .user import EventSubUserAuthorizationRevokeEvent, EventSubUserUpdateEvent

__all__ = [
    "CharityAmount",
    "EventSubChannelBanEvent",
    "EventSubChannelCharityCampaignProgressEvent",
    "EventSubChannelHypeTrainProgressEvent",
    "EventSubChannelRaidEvent",
    "EventSubChannelRedemptionAddEvent",
    "EventSubChannelSubscriptionEvent",
    "EventSubEvent",
    "EventSubStreamOfflineEvent",
    "EventSubUserAuthorizationRevokeEvent",
    "EventSubUserUpdateEvent",
    "HypeTrainContribution",
]
