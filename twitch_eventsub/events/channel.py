"""Channel scoped EventSub events."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..api.data import parse_timestamp
from ..api.users import HelixUser
from .base import BroadcasterEventMixin, EventSubEvent


class EventSubChannelBanEvent(BroadcasterEventMixin, EventSubEvent):
    """An EventSub event representing a user being banned in a channel."""

    @property
    def user_id(self) -> str:
        """The ID of the banned user."""
        return self._data["user_id"]

    @property
    def user_name(self) -> str:
        return self._first("user_login", "user_name")

    @property
    def user_display_name(self) -> str:
        return self._first("user_name", "user_login")

    @property
    def moderator_id(self) -> str | None:
        """The ID of the moderator who issued the ban."""
        return self._first("moderator_user_id", "moderator_id")

    @property
    def moderator_name(self) -> str | None:
        return self._data.get("moderator_user_login")

    @property
    def moderator_display_name(self) -> str | None:
        return self._data.get("moderator_user_name")

    @property
    def reason(self) -> str:
        return self._data.get("reason") or ""

    @property
    def banned_at(self) -> datetime | None:
        return parse_timestamp(self._data.get("banned_at"))

    @property
    def ends_at(self) -> datetime | None:
        """When a timeout ends; None for permanent bans."""
        return parse_timestamp(self._data.get("ends_at"))

    @property
    def is_permanent(self) -> bool:
        if "is_permanent" in self._data:
            return bool(self._data["is_permanent"])
        return self._data.get("ends_at") is None

    async def get_user(self) -> HelixUser | None:
        return await self._get_user(self.user_id)

    async def get_moderator(self) -> HelixUser | None:
        return await self._get_user(self.moderator_id)


class EventSubChannelRaidEvent(EventSubEvent):
    """A raid from one channel to another."""

    @property
    def raiding_broadcaster_id(self) -> str:
        return self._data["from_broadcaster_user_id"]

    @property
    def raiding_broadcaster_name(self) -> str:
        return self._data.get("from_broadcaster_user_login", "")

    @property
    def raiding_broadcaster_display_name(self) -> str:
        return self._data.get("from_broadcaster_user_name", "")

    @property
    def raided_broadcaster_id(self) -> str:
        return self._data["to_broadcaster_user_id"]

    @property
    def raided_broadcaster_name(self) -> str:
        return self._data.get("to_broadcaster_user_login", "")

    @property
    def raided_broadcaster_display_name(self) -> str:
        return self._data.get("to_broadcaster_user_name", "")

    @property
    def viewers(self) -> int:
        return int(self._data.get("viewers", 0))

    async def get_raiding_broadcaster(self) -> HelixUser | None:
        return await self._get_user(self.raiding_broadcaster_id)

    async def get_raided_broadcaster(self) -> HelixUser | None:
        return await self._get_user(self.raided_broadcaster_id)


class EventSubChannelSubscriptionEvent(BroadcasterEventMixin, EventSubEvent):
    """A user subscribing to a channel."""

    @property
    def user_id(self) -> str:
        return self._data["user_id"]

    @property
    def user_name(self) -> str:
        return self._data.get("user_login", "")

    @property
    def user_display_name(self) -> str:
        return self._data.get("user_name", "")

    @property
    def tier(self) -> str:
        """The tier of the subscription: ``1000``, ``2000`` or ``3000``."""
        return self._data.get("tier", "1000")

    @property
    def is_gift(self) -> bool:
        return bool(self._data.get("is_gift", False))

    async def get_user(self) -> HelixUser | None:
        return await self._get_user(self.user_id)


@dataclass(frozen=True)
class HypeTrainContribution:
    user_id: str
    user_name: str
    user_display_name: str
    type: str
    total: int

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> HypeTrainContribution:
        return cls(
            user_id=raw.get("user_id", ""),
            user_name=raw.get("user_login", ""),
            user_display_name=raw.get("user_name", ""),
            type=raw.get("type", ""),
            total=int(raw.get("total", 0)),
        )


class EventSubChannelHypeTrainProgressEvent(BroadcasterEventMixin, EventSubEvent):
    """Progress of an ongoing hype train."""

    @property
    def id(self) -> str:
        return self._data.get("id", "")

    @property
    def level(self) -> int:
        return int(self._data.get("level", 1))

    @property
    def total(self) -> int:
        return int(self._data.get("total", 0))

    @property
    def progress(self) -> int:
        """Points contributed to the current level."""
        return int(self._data.get("progress", 0))

    @property
    def goal(self) -> int:
        return int(self._data.get("goal", 0))

    @property
    def top_contributors(self) -> list[HypeTrainContribution]:
        return [
            HypeTrainContribution.from_raw(c)
            for c in self._data.get("top_contributions") or []
        ]

    @property
    def last_contribution(self) -> HypeTrainContribution | None:
        raw = self._data.get("last_contribution")
        return HypeTrainContribution.from_raw(raw) if raw else None

    @property
    def start_date(self) -> datetime | None:
        return parse_timestamp(self._data.get("started_at"))

    @property
    def expiry_date(self) -> datetime | None:
        return parse_timestamp(self._data.get("expires_at"))


class EventSubChannelRedemptionAddEvent(BroadcasterEventMixin, EventSubEvent):
    """A viewer redeeming a channel points reward."""

    @property
    def id(self) -> str:
        return self._data["id"]

    @property
    def user_id(self) -> str:
        return self._data["user_id"]

    @property
    def user_name(self) -> str:
        return self._data.get("user_login", "")

    @property
    def user_display_name(self) -> str:
        return self._data.get("user_name", "")

    @property
    def input(self) -> str:
        return self._data.get("user_input") or ""

    @property
    def status(self) -> str:
        return self._data.get("status", "")

    @property
    def reward_id(self) -> str:
        return (self._data.get("reward") or {}).get("id", "")

    @property
    def reward_title(self) -> str:
        return (self._data.get("reward") or {}).get("title", "")

    @property
    def reward_cost(self) -> int:
        return int((self._data.get("reward") or {}).get("cost", 0))

    @property
    def reward_prompt(self) -> str:
        return (self._data.get("reward") or {}).get("prompt", "")

    @property
    def redemption_date(self) -> datetime | None:
        return parse_timestamp(self._data.get("redeemed_at"))

    async def get_user(self) -> HelixUser | None:
        return await self._get_user(self.user_id)


@dataclass(frozen=True)
class CharityAmount:
    """A monetary amount as sent by Twitch: value scaled by decimal places."""

    value: int
    decimal_places: int
    currency: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None) -> CharityAmount:
        raw = raw or {}
        return cls(
            value=int(raw.get("value", 0)),
            decimal_places=int(raw.get("decimal_places", 0)),
            currency=raw.get("currency", ""),
        )

    @property
    def localized_value(self) -> Decimal:
        return Decimal(self.value).scaleb(-self.decimal_places)


class EventSubChannelCharityCampaignProgressEvent(BroadcasterEventMixin, EventSubEvent):
    """An EventSub event representing progress of a charity campaign in a channel."""

    @property
    def id(self) -> str:
        """An ID that identifies the charity campaign."""
        return self._data["id"]

    @property
    def charity_name(self) -> str:
        return self._data.get("charity_name", "")

    @property
    def charity_description(self) -> str:
        return self._data.get("charity_description", "")

    @property
    def charity_logo(self) -> str:
        """A URL to an image of the charity's logo (PNG, 100x100)."""
        return self._data.get("charity_logo", "")

    @property
    def charity_website(self) -> str:
        return self._data.get("charity_website", "")

    @property
    def current_amount(self) -> CharityAmount:
        return CharityAmount.from_raw(self._data.get("current_amount"))

    @property
    def target_amount(self) -> CharityAmount:
        return CharityAmount.from_raw(self._data.get("target_amount"))
