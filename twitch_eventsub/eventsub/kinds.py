"""Event kind registry.

Every EventSub event kind the listener supports is one :class:`EventKind`
entry: its remote type and version, how the local subscription key is derived
from the scoping parameters, how the remote condition is built, and which
event class the raw payload is transformed into. Supporting a new kind means
adding an entry here and a ``subscribe_to_*`` shortcut on the listener.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ..errors.eventsub import SubscriptionError
from ..events import (
    EventSubChannelBanEvent,
    EventSubChannelCharityCampaignProgressEvent,
    EventSubChannelHypeTrainProgressEvent,
    EventSubChannelRaidEvent,
    EventSubChannelRedemptionAddEvent,
    EventSubChannelSubscriptionEvent,
    EventSubEvent,
    EventSubStreamOfflineEvent,
    EventSubUserAuthorizationRevokeEvent,
    EventSubUserUpdateEvent,
)

if TYPE_CHECKING:
    from ..api.helix import HelixClient

ConditionBuilder = Callable[[Mapping[str, str]], dict[str, str]]

# Transform registry keyed by the remote event type string
EVENT_CLASSES: Mapping[str, type[EventSubEvent]] = MappingProxyType(
    {
        "channel.ban": EventSubChannelBanEvent,
        "channel.raid": EventSubChannelRaidEvent,
        "channel.subscribe": EventSubChannelSubscriptionEvent,
        "channel.hype_train.progress": EventSubChannelHypeTrainProgressEvent,
        "channel.channel_points_custom_reward_redemption.add": EventSubChannelRedemptionAddEvent,
        "channel.charity_campaign.progress": EventSubChannelCharityCampaignProgressEvent,
        "stream.offline": EventSubStreamOfflineEvent,
        "user.update": EventSubUserUpdateEvent,
        "user.authorization.revoke": EventSubUserAuthorizationRevokeEvent,
    }
)


def _broadcaster(params: Mapping[str, str]) -> dict[str, str]:
    return {"broadcaster_user_id": params["user_id"]}


@dataclass(frozen=True)
class EventKind:
    """Description of one subscribable event kind.

    Attributes:
        name: Registry name, unique per kind.
        type: Remote EventSub subscription type.
        version: Remote subscription type version.
        key_template: ``str.format`` template over the params giving the local key.
        condition: Builds the remote condition from the params.
        required_params: Parameter names that must be present and non-empty.
    """

    name: str
    type: str
    version: str
    key_template: str
    condition: ConditionBuilder
    required_params: tuple[str, ...] = field(default=("user_id",))

    @property
    def event_class(self) -> type[EventSubEvent]:
        return EVENT_CLASSES[self.type]

    def validate_params(self, params: Mapping[str, Any]) -> dict[str, str]:
        """Check and normalise scoping params to a plain ``str`` dict."""
        clean: dict[str, str] = {}
        for name in self.required_params:
            value = params.get(name)
            if value is None or str(value).strip() == "":
                raise SubscriptionError(
                    f"Missing parameter '{name}' for {self.name}",
                    operation_type="subscribe",
                )
            clean[name] = str(value).strip()
        return clean

    def key(self, params: Mapping[str, Any]) -> str:
        """Deterministic local identity of a subscription of this kind."""
        return self.key_template.format(**self.validate_params(params))

    def build_condition(self, params: Mapping[str, Any]) -> dict[str, str]:
        return self.condition(self.validate_params(params))

    def transform(self, raw: Mapping[str, Any], client: HelixClient | None) -> EventSubEvent:
        """Turn the raw ``event`` object into its typed event."""
        return self.event_class(raw, client)


_KINDS = (
    EventKind(
        name="channel_ban",
        type="channel.ban",
        version="1",
        key_template="channel.ban.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="channel_raid_from",
        type="channel.raid",
        version="1",
        key_template="channel.raid.from.{user_id}",
        condition=lambda p: {"from_broadcaster_user_id": p["user_id"]},
    ),
    EventKind(
        name="channel_raid_to",
        type="channel.raid",
        version="1",
        key_template="channel.raid.to.{user_id}",
        condition=lambda p: {"to_broadcaster_user_id": p["user_id"]},
    ),
    EventKind(
        name="channel_subscription",
        type="channel.subscribe",
        version="1",
        key_template="channel.subscribe.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="channel_hype_train_progress",
        type="channel.hype_train.progress",
        version="1",
        key_template="channel.hype_train.progress.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="channel_redemption_add",
        type="channel.channel_points_custom_reward_redemption.add",
        version="1",
        key_template="channel.channel_points_custom_reward_redemption.add.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="channel_redemption_add_for_reward",
        type="channel.channel_points_custom_reward_redemption.add",
        version="1",
        key_template="channel.channel_points_custom_reward_redemption.add.{user_id}.{reward_id}",
        condition=lambda p: {"broadcaster_user_id": p["user_id"], "reward_id": p["reward_id"]},
        required_params=("user_id", "reward_id"),
    ),
    EventKind(
        name="channel_charity_campaign_progress",
        type="channel.charity_campaign.progress",
        version="1",
        key_template="channel.charity_campaign.progress.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="stream_offline",
        type="stream.offline",
        version="1",
        key_template="stream.offline.{user_id}",
        condition=_broadcaster,
    ),
    EventKind(
        name="user_update",
        type="user.update",
        version="1",
        key_template="user.update.{user_id}",
        condition=lambda p: {"user_id": p["user_id"]},
    ),
    EventKind(
        name="user_authorization_revoke",
        type="user.authorization.revoke",
        version="1",
        key_template="user.authorization.revoke.{client_id}",
        condition=lambda p: {"client_id": p["client_id"]},
        required_params=("client_id",),
    ),
)

EVENT_KINDS: Mapping[str, EventKind] = MappingProxyType({k.name: k for k in _KINDS})


def get_event_kind(name: str) -> EventKind:
    """Look up a kind by registry name.

    Raises:
        SubscriptionError: If no kind with that name exists.
    """
    try:
        return EVENT_KINDS[name]
    except KeyError:
        raise SubscriptionError(
            f"Unknown event kind '{name}'", operation_type="subscribe"
        ) from None
