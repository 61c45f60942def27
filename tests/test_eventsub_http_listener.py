"""End-to-end tests of the aiohttp front-end on a local port."""

import socket
from unittest.mock import MagicMock

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import unused_port

from tests.fixtures.eventsub_fixtures import (
    BAN_EVENT,
    HOST,
    notification_message,
    signed_headers,
    verification_message,
)
from twitch_eventsub.constants import MESSAGE_TYPE_VERIFICATION
from twitch_eventsub.errors.eventsub import ListenerStateError, TransportError
from twitch_eventsub.eventsub import (
    EventSubHttpListener,
    ReverseProxyAdapter,
    SubscriptionStatus,
)


def _adapter(port: int, **options) -> ReverseProxyAdapter:
    return ReverseProxyAdapter(host_name=HOST, port=port, bind_host="127.0.0.1", **options)


@pytest_asyncio.fixture
async def running_listener(api_client, listener_config):
    """Listener serving ``/hooks`` on an unused local port."""
    port = unused_port()
    listener = EventSubHttpListener(
        api_client,
        _adapter(port, path_prefix="/hooks", use_path_prefix_in_handlers=True),
        listener_config,
    )
    result = await listener.start()
    assert result.ok
    yield listener, f"http://127.0.0.1:{port}"
    if listener.is_running:
        await listener.stop()


@pytest.mark.asyncio
async def test_prefixed_health_and_verification_scenario(running_listener):
    listener, base = running_listener
    subscription = await listener.subscribe_to_user_update_events("123", MagicMock())
    body = b'{"challenge":"abc"}'

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{base}/hooks/", headers={"Host": HOST}) as resp:
            assert resp.status == 200
            assert await resp.text() == "OK"

        headers = {**signed_headers(body, MESSAGE_TYPE_VERIFICATION), "Host": HOST}
        async with session.post(f"{base}/hooks/event/user.update.123", data=body, headers=headers) as resp:
            assert resp.status == 200
            assert await resp.text() == "abc"
        assert subscription.status is SubscriptionStatus.VERIFIED

        headers = {**signed_headers(body, MESSAGE_TYPE_VERIFICATION), "Host": HOST}
        async with session.post(f"{base}/hooks/event/user.update.123", data=body, headers=headers) as resp:
            assert resp.status == 404


@pytest.mark.asyncio
async def test_notification_reaches_handler(running_listener):
    listener, base = running_listener
    handler = MagicMock()
    subscription = await listener.subscribe_to_channel_ban_events("1337", handler)
    url = f"{base}/hooks/event/channel.ban.1337"

    async with aiohttp.ClientSession() as session:
        body, headers = verification_message(subscription.remote_id)
        async with session.post(url, data=body, headers={**headers, "Host": HOST}) as resp:
            assert resp.status == 200
        body, headers = notification_message(subscription.remote_id, BAN_EVENT)
        async with session.post(url, data=body, headers={**headers, "Host": HOST}) as resp:
            assert resp.status == 200
            assert await resp.text() == ""

    await listener.wait_for_pending_handlers()
    handler.assert_called_once()
    assert handler.call_args.args[0].broadcaster_id == "1337"


@pytest.mark.asyncio
async def test_legacy_and_unknown_routes(running_listener, caplog):
    _, base = running_listener

    async with aiohttp.ClientSession() as session:
        async with session.post(f"{base}/hooks/channel.ban.1337", data=b"{}", headers={"Host": HOST}) as resp:
            assert resp.status == 410
            assert "/hooks/event/channel.ban.1337" in await resp.text()
        async with session.post(
            f"{base}/hooks/channel.ban.1337", data=b"{}", headers={"Host": "evil.example.org"}
        ) as resp:
            assert resp.status == 404
        async with session.get(f"{base}/hooks/event/channel.ban.1337", headers={"Host": HOST}) as resp:
            assert resp.status == 405
        async with session.get(f"{base}/elsewhere/deep/path", headers={"Host": HOST}) as resp:
            assert resp.status == 404

    assert any("unknown URL/method" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_foreign_host_is_rejected_over_http(running_listener):
    listener, base = running_listener
    subscription = await listener.subscribe_to_channel_ban_events("1337", MagicMock())
    body, headers = verification_message(subscription.remote_id)

    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{base}/hooks/event/channel.ban.1337", data=body, headers={**headers, "Host": "evil.example.org"}
        ) as resp:
            assert resp.status == 404
    assert subscription.status is SubscriptionStatus.PENDING


@pytest.mark.asyncio
async def test_stop_suspends_subscriptions_and_closes_socket(api_client, listener_config):
    port = unused_port()
    listener = EventSubHttpListener(api_client, _adapter(port), listener_config)
    assert (await listener.start()).ok
    base = f"http://127.0.0.1:{port}"

    subs = [
        await listener.subscribe_to_channel_ban_events("1", MagicMock()),
        await listener.subscribe_to_stream_offline_events("2", MagicMock()),
    ]
    async with aiohttp.ClientSession() as session:
        for sub in subs:
            body, headers = verification_message(sub.remote_id)
            async with session.post(
                f"{base}/event/{sub.key}", data=body, headers={**headers, "Host": HOST}
            ) as resp:
                assert resp.status == 200
    assert all(sub.status is SubscriptionStatus.VERIFIED for sub in subs)

    result = await listener.stop()

    assert result.ok
    assert not listener.is_running
    assert not listener.ready_to_subscribe
    assert listener.subscriptions == {}
    assert all(sub.status is SubscriptionStatus.SUSPENDED for sub in subs)
    assert sorted(api_client.eventsub.deleted) == sorted(sub.remote_id for sub in subs)
    async with aiohttp.ClientSession() as session:
        with pytest.raises(aiohttp.ClientConnectionError):
            async with session.get(f"{base}/", headers={"Host": HOST}):
                pass


@pytest.mark.asyncio
async def test_subscriptions_made_before_start_are_registered_on_start(api_client, listener_config):
    listener = EventSubHttpListener(api_client, _adapter(unused_port()), listener_config)
    subscription = await listener.subscribe_to_stream_offline_events("42", MagicMock())
    assert api_client.eventsub.created == []

    async with listener:
        assert listener.ready_to_subscribe
        assert subscription.remote_id == "remote-1"
        assert api_client.eventsub.created[0]["transport"]["callback"] == (
            f"https://{HOST}/event/stream.offline.42"
        )

    assert not listener.is_running


@pytest.mark.asyncio
async def test_lifecycle_misuse_raises(api_client, listener_config):
    listener = EventSubHttpListener(api_client, _adapter(unused_port()), listener_config)

    with pytest.raises(ListenerStateError):
        listener.stop()

    start_task = listener.start()
    with pytest.raises(ListenerStateError):
        listener.start()
    assert (await start_task).ok
    assert (await listener.stop()).ok


@pytest.mark.asyncio
async def test_bind_failure_leaves_listener_not_ready(api_client, listener_config, caplog):
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen()
    port = blocker.getsockname()[1]
    try:
        listener = EventSubHttpListener(api_client, _adapter(port), listener_config)
        await listener.subscribe_to_stream_offline_events("42", MagicMock())

        result = await listener.start()

        assert not result.ok
        assert isinstance(result.error, TransportError)
        assert not listener.is_running
        assert not listener.ready_to_subscribe
        assert api_client.eventsub.created == []
        assert any(r.levelname == "CRITICAL" for r in caplog.records)
    finally:
        blocker.close()
