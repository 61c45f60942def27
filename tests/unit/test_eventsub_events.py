"""Unit tests for typed EventSub event objects."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fixtures.eventsub_fixtures import BAN_EVENT
from twitch_eventsub.api.users import HelixUser
from twitch_eventsub.events import (
    EventSubChannelBanEvent,
    EventSubChannelCharityCampaignProgressEvent,
    EventSubChannelHypeTrainProgressEvent,
    EventSubChannelRedemptionAddEvent,
    EventSubStreamOfflineEvent,
    EventSubUserUpdateEvent,
)


def test_ban_event_fields():
    event = EventSubChannelBanEvent(BAN_EVENT)

    assert event.broadcaster_id == "1337"
    assert event.broadcaster_name == "cooler_user"
    assert event.broadcaster_display_name == "Cooler_User"
    assert event.user_name == "cool_user"
    assert event.user_display_name == "Cool_User"
    assert event.moderator_id == "1339"
    assert event.moderator_name == "mod_user"
    assert event.reason == "Offensive language"
    assert event.banned_at == datetime(2020, 7, 15, 18, 15, 11, 171067, tzinfo=UTC)
    assert event.is_permanent is False


def test_permanent_ban_without_flag():
    raw = {k: v for k, v in BAN_EVENT.items() if k not in ("is_permanent", "ends_at")}
    event = EventSubChannelBanEvent(raw)
    assert event.ends_at is None
    assert event.is_permanent is True


def test_event_is_immutable_snapshot():
    raw = dict(BAN_EVENT)
    event = EventSubChannelBanEvent(raw)
    raw["user_id"] = "changed"

    assert event.user_id == "1234"
    with pytest.raises(TypeError):
        event.raw["user_id"] = "x"  # type: ignore[index]


@pytest.mark.asyncio
async def test_relation_getters_use_client():
    client = MagicMock()
    user = HelixUser({"id": "1234", "login": "cool_user", "display_name": "Cool_User"})
    client.users.get_user_by_id = AsyncMock(return_value=user)
    event = EventSubChannelBanEvent(BAN_EVENT, client)

    assert await event.get_user() is user
    client.users.get_user_by_id.assert_awaited_once_with("1234")


@pytest.mark.asyncio
async def test_relation_getter_without_client_raises():
    event = EventSubStreamOfflineEvent({"broadcaster_user_id": "1"})
    with pytest.raises(RuntimeError):
        await event.get_broadcaster()


def test_hype_train_progress():
    event = EventSubChannelHypeTrainProgressEvent(
        {
            "broadcaster_user_id": "1",
            "level": 2,
            "total": 700,
            "progress": 200,
            "goal": 1000,
            "top_contributions": [
                {"user_id": "2", "user_login": "a", "user_name": "A", "type": "bits", "total": 50}
            ],
            "last_contribution": {"user_id": "3", "type": "subscription", "total": 45},
            "started_at": "2020-07-15T17:16:03.17106713Z",
        }
    )
    assert event.level == 2
    assert event.top_contributors[0].user_display_name == "A"
    assert event.last_contribution.total == 45
    assert event.start_date.year == 2020


def test_redemption_reward_fields():
    event = EventSubChannelRedemptionAddEvent(
        {
            "id": "red-1",
            "broadcaster_user_id": "1",
            "user_id": "2",
            "user_input": "hello",
            "status": "unfulfilled",
            "reward": {"id": "rw", "title": "Hydrate", "cost": 100, "prompt": "Drink"},
            "redeemed_at": "2020-07-15T17:16:03.17106713Z",
        }
    )
    assert event.reward_id == "rw"
    assert event.reward_cost == 100
    assert event.input == "hello"


def test_charity_amount_is_localized():
    event = EventSubChannelCharityCampaignProgressEvent(
        {
            "id": "c-1",
            "broadcaster_user_id": "1",
            "current_amount": {"value": 260000, "decimal_places": 2, "currency": "USD"},
        }
    )
    assert event.current_amount.localized_value == Decimal("2600.00")
    assert event.current_amount.currency == "USD"


def test_user_update_email_optional():
    event = EventSubUserUpdateEvent({"user_id": "1", "user_login": "x"})
    assert event.user_email is None
    assert event.user_email_is_verified is False
