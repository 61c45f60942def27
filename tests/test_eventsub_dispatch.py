"""Tests for EventSubListener.dispatch: verification, signatures, dedup, revocation, handlers."""

import asyncio
import json
import logging
import threading
import time
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from tests.fixtures.eventsub_fixtures import (
    BAN_EVENT,
    HOST,
    SECRET,
    notification_message,
    revocation_message,
    signed_headers,
    verification_message,
)
from twitch_eventsub.config import ListenerConfig
from twitch_eventsub.constants import HEADER_MESSAGE_SIGNATURE, MESSAGE_TYPE_NOTIFICATION
from twitch_eventsub.events import EventSubChannelBanEvent
from twitch_eventsub.eventsub import DispatchResult, EventSubListener, SubscriptionStatus
from twitch_eventsub.logging_config import error_aggregator

BAN_KEY = "channel.ban.1337"


async def _verified_ban_subscription(listener, handler):
    subscription = await listener.subscribe_to_channel_ban_events("1337", handler)
    body, headers = verification_message(subscription.remote_id)
    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)
    assert result.status == 200
    return subscription


@pytest.mark.asyncio
async def test_verification_echoes_challenge_and_verifies(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    assert subscription.status is SubscriptionStatus.PENDING

    body, headers = verification_message(subscription.remote_id, challenge="abc")
    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result == DispatchResult(200, "abc")
    assert subscription.status is SubscriptionStatus.VERIFIED


@pytest.mark.asyncio
async def test_repeated_verification_is_rejected(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message(subscription.remote_id)
    await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    # Same body again, fresh message id and signature
    _, headers_again = verification_message(subscription.remote_id)
    result = await listener.dispatch(BAN_KEY, headers_again, body, host=HOST)

    assert result.status == 404
    assert subscription.status is SubscriptionStatus.VERIFIED


@pytest.mark.asyncio
async def test_verification_with_foreign_remote_id_changes_nothing(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message("someone-elses-id")

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result.status == 404
    assert subscription.status is SubscriptionStatus.PENDING
    assert subscription.remote_id == "remote-1"


@pytest.mark.asyncio
async def test_unknown_key_returns_404(listener):
    body, headers = verification_message("remote-1")
    result = await listener.dispatch("channel.ban.999", headers, body, host=HOST)
    assert result.status == 404


@pytest.mark.asyncio
async def test_foreign_host_returns_404(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message(subscription.remote_id)

    result = await listener.dispatch(BAN_KEY, headers, body, host="evil.example.org")

    assert result.status == 404
    assert subscription.status is SubscriptionStatus.PENDING


@pytest.mark.asyncio
async def test_host_check_disabled_accepts_any_host(api_client, adapter):
    core = EventSubListener(api_client, adapter, ListenerConfig(secret=SECRET, strict_host_check=False))
    core._ready_to_subscribe = True
    subscription = await core.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message(subscription.remote_id)

    result = await core.dispatch(BAN_KEY, headers, body, host="localhost:8080")

    assert result.status == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "host_header,denied",
    [
        (HOST, False),
        (f"{HOST}:8080", False),
        ("EventSub.Example.COM", False),
        ("other.example.com", True),
        ("", True),
        (None, True),
        ("[::1]:8080", True),
    ],
)
async def test_is_host_denied(listener, host_header, denied):
    assert await listener._is_host_denied(host_header) is denied


@pytest.mark.asyncio
async def test_single_byte_body_mutation_is_rejected(listener):
    handler = MagicMock()
    await _verified_ban_subscription(listener, handler)
    body, headers = notification_message("remote-1", BAN_EVENT)
    tampered = bytearray(body)
    tampered[-2] ^= 0x01

    result = await listener.dispatch(BAN_KEY, headers, bytes(tampered), host=HOST)
    await listener.wait_for_pending_handlers()

    assert result.status == 403
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_missing_or_wrong_signature_is_rejected(listener):
    handler = MagicMock()
    await _verified_ban_subscription(listener, handler)
    body, headers = notification_message("remote-1", BAN_EVENT)

    missing = {k: v for k, v in headers.items() if k != HEADER_MESSAGE_SIGNATURE}
    assert (await listener.dispatch(BAN_KEY, missing, body, host=HOST)).status == 403

    wrong_secret = signed_headers(body, MESSAGE_TYPE_NOTIFICATION, secret="not-the-secret")
    assert (await listener.dispatch(BAN_KEY, wrong_secret, body, host=HOST)).status == 403

    await listener.wait_for_pending_handlers()
    handler.assert_not_called()
    assert "signature" in error_aggregator.get_error_summary()


@pytest.mark.asyncio
async def test_stale_timestamp_is_rejected(listener):
    handler = MagicMock()
    await _verified_ban_subscription(listener, handler)
    body = json.dumps({"subscription": {"id": "remote-1"}, "event": BAN_EVENT}).encode()
    headers = signed_headers(body, MESSAGE_TYPE_NOTIFICATION, timestamp="2019-11-16T10:11:12.634234626Z")

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result.status == 403
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_headers_are_case_insensitive(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message(subscription.remote_id)
    lowered = {k.lower(): v for k, v in headers.items()}

    result = await listener.dispatch(BAN_KEY, lowered, body, host=HOST)

    assert result.status == 200


@pytest.mark.asyncio
async def test_duplicate_delivery_invokes_handler_once(listener):
    handler = MagicMock()
    await _verified_ban_subscription(listener, handler)
    body, headers = notification_message("remote-1", BAN_EVENT, message_id="msg-1")

    first = await listener.dispatch(BAN_KEY, headers, body, host=HOST)
    second = await listener.dispatch(BAN_KEY, headers, body, host=HOST)
    await listener.wait_for_pending_handlers()

    assert first == DispatchResult(200)
    assert second == DispatchResult(200)
    handler.assert_called_once()
    event = handler.call_args.args[0]
    assert isinstance(event, EventSubChannelBanEvent)
    assert event.broadcaster_id == "1337"
    assert event.user_id == "1234"


@pytest.mark.asyncio
async def test_notification_for_unverified_subscription_is_dropped(listener):
    handler = MagicMock()
    await listener.subscribe_to_channel_ban_events("1337", handler)
    body, headers = notification_message("remote-1", BAN_EVENT)

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)
    await listener.wait_for_pending_handlers()

    assert result.status == 200
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_message_type_returns_400(listener):
    await _verified_ban_subscription(listener, MagicMock())
    body = b'{"subscription": {}}'
    headers = signed_headers(body, "keepalive")

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result.status == 400


@pytest.mark.asyncio
async def test_undecodable_body_returns_400(listener):
    await _verified_ban_subscription(listener, MagicMock())
    body = b"not json at all"
    headers = signed_headers(body, MESSAGE_TYPE_NOTIFICATION)

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result.status == 400


@pytest.mark.asyncio
async def test_revocation_removes_subscription(listener, store):
    subscription = await _verified_ban_subscription(listener, MagicMock())
    assert await store.get(BAN_KEY) is not None
    body, headers = revocation_message("remote-1")

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result == DispatchResult(200)
    assert subscription.status is SubscriptionStatus.REVOKED
    assert listener.get_subscription(BAN_KEY) is None
    assert await store.get(BAN_KEY) is None

    # Further callbacks for the key are unknown
    body, headers = notification_message("remote-1", BAN_EVENT)
    assert (await listener.dispatch(BAN_KEY, headers, body, host=HOST)).status == 404


@pytest.mark.asyncio
async def test_handler_error_is_logged_and_isolated(listener, caplog):
    calls = []

    def handler(event):
        calls.append(event.user_id)
        if len(calls) == 1:
            raise ValueError("handler blew up")

    await _verified_ban_subscription(listener, handler)
    with caplog.at_level(logging.ERROR):
        for user_id in ("1", "2"):
            body, headers = notification_message("remote-1", {**BAN_EVENT, "user_id": user_id})
            result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)
            assert result.status == 200
        await listener.wait_for_pending_handlers()

    assert calls == ["1", "2"]
    assert any("Handler of channel.ban.1337 raised" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_handlers_run_in_arrival_order(listener):
    seen = []

    async def handler(event):
        # The first event takes longest; order must still be preserved
        await asyncio.sleep(0.05 if event.user_id == "1" else 0)
        seen.append(event.user_id)

    await _verified_ban_subscription(listener, handler)
    for user_id in ("1", "2", "3"):
        body, headers = notification_message("remote-1", {**BAN_EVENT, "user_id": user_id})
        await listener.dispatch(BAN_KEY, headers, body, host=HOST)
    await listener.wait_for_pending_handlers()

    assert seen == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_slow_handler_is_reported_after_timeout(api_client, adapter):
    core = EventSubListener(api_client, adapter, ListenerConfig(secret=SECRET, handler_timeout=0.05))
    core._ready_to_subscribe = True
    finished = asyncio.Event()

    async def handler(event):
        await asyncio.sleep(0.2)
        finished.set()

    await _verified_ban_subscription(core, handler)
    body, headers = notification_message("remote-1", BAN_EVENT)
    result = await core.dispatch(BAN_KEY, headers, body, host=HOST)
    assert result.status == 200

    await asyncio.sleep(0.1)
    assert "handler" in error_aggregator.get_error_summary()
    # Not cancelled, just no longer awaited
    await core.wait_for_pending_handlers()
    assert finished.is_set()


@pytest.mark.asyncio
async def test_blocking_sync_handler_does_not_stall_the_loop(api_client, adapter):
    core = EventSubListener(api_client, adapter, ListenerConfig(secret=SECRET, handler_timeout=0.05))
    core._ready_to_subscribe = True
    finished = threading.Event()

    def handler(event):
        time.sleep(0.5)
        finished.set()

    await _verified_ban_subscription(core, handler)
    body, headers = notification_message("remote-1", BAN_EVENT)
    result = await core.dispatch(BAN_KEY, headers, body, host=HOST)
    assert result.status == 200

    loop = asyncio.get_running_loop()
    started = loop.time()
    await asyncio.sleep(0.01)
    assert loop.time() - started < 0.25

    await asyncio.sleep(0.1)
    assert "handler" in error_aggregator.get_error_summary()
    assert not finished.is_set()
    await core.wait_for_pending_handlers()
    assert finished.is_set()


@pytest.mark.asyncio
async def test_sync_handler_errors_are_logged(listener, caplog):
    def handler(event):
        raise RuntimeError("sync handler failed")

    await _verified_ban_subscription(listener, handler)
    body, headers = notification_message("remote-1", BAN_EVENT)
    with caplog.at_level(logging.ERROR):
        assert (await listener.dispatch(BAN_KEY, headers, body, host=HOST)).status == 200
        await listener.wait_for_pending_handlers()

    assert any("sync handler failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_timestamps_with_nanoseconds_are_accepted(listener):
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, _ = verification_message(subscription.remote_id)
    timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f") + "789Z"
    headers = signed_headers(body, "webhook_callback_verification", timestamp=timestamp)

    result = await listener.dispatch(BAN_KEY, headers, body, host=HOST)

    assert result.status == 200
