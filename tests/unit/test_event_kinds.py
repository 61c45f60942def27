"""Unit tests for the event kind registry."""

from unittest.mock import MagicMock

import pytest

from tests.fixtures.eventsub_fixtures import BAN_EVENT
from twitch_eventsub.errors.eventsub import SubscriptionError
from twitch_eventsub.events import (
    EventSubChannelBanEvent,
    EventSubChannelRaidEvent,
    EventSubUserAuthorizationRevokeEvent,
)
from twitch_eventsub.eventsub import EVENT_CLASSES, EVENT_KINDS, get_event_kind


def test_every_kind_has_an_event_class():
    for kind in EVENT_KINDS.values():
        assert kind.event_class is EVENT_CLASSES[kind.type]


def test_key_is_deterministic():
    kind = get_event_kind("channel_ban")
    assert kind.key({"user_id": "1337"}) == "channel.ban.1337"
    assert kind.key({"user_id": 1337}) == kind.key({"user_id": " 1337 "})


def test_keys_are_unique_across_kinds():
    params = {"user_id": "1", "reward_id": "2", "client_id": "3"}
    keys = [kind.key(params) for kind in EVENT_KINDS.values()]
    assert len(set(keys)) == len(keys)


@pytest.mark.parametrize("params", [{}, {"user_id": ""}, {"user_id": "   "}, {"user_id": None}])
def test_missing_params_raise(params):
    with pytest.raises(SubscriptionError):
        get_event_kind("stream_offline").key(params)


def test_unknown_kind_raises():
    with pytest.raises(SubscriptionError):
        get_event_kind("channel.follow")


def test_raid_directions_build_distinct_conditions():
    assert get_event_kind("channel_raid_from").build_condition({"user_id": "5"}) == {
        "from_broadcaster_user_id": "5"
    }
    assert get_event_kind("channel_raid_to").build_condition({"user_id": "5"}) == {
        "to_broadcaster_user_id": "5"
    }


def test_reward_kind_requires_reward_id():
    kind = get_event_kind("channel_redemption_add_for_reward")
    assert kind.required_params == ("user_id", "reward_id")
    assert kind.build_condition({"user_id": "1", "reward_id": "abc"}) == {
        "broadcaster_user_id": "1",
        "reward_id": "abc",
    }


def test_ban_transform_maps_ids():
    client = MagicMock()
    event = get_event_kind("channel_ban").transform(BAN_EVENT, client)

    assert isinstance(event, EventSubChannelBanEvent)
    assert event.broadcaster_id == BAN_EVENT["broadcaster_user_id"]
    assert event.user_id == BAN_EVENT["user_id"]


def test_ban_transform_accepts_short_id_keys():
    event = get_event_kind("channel_ban").transform({"broadcaster_id": "77", "user_id": "88"}, None)
    assert event.broadcaster_id == "77"
    assert event.user_id == "88"


def test_transform_types_per_kind():
    raid = get_event_kind("channel_raid_to").transform(
        {"from_broadcaster_user_id": "1", "to_broadcaster_user_id": "2", "viewers": 9}, None
    )
    revoke = get_event_kind("user_authorization_revoke").transform(
        {"client_id": "c", "user_id": "u"}, None
    )
    assert isinstance(raid, EventSubChannelRaidEvent)
    assert raid.viewers == 9
    assert isinstance(revoke, EventSubUserAuthorizationRevokeEvent)
