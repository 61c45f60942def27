import pytest

from tests.fixtures.eventsub_fixtures import HOST, SECRET, FakeApiClient
from twitch_eventsub.config import ListenerConfig
from twitch_eventsub.eventsub import (
    EventSubListener,
    MemorySubscriptionStore,
    ReverseProxyAdapter,
)


@pytest.fixture
def api_client():
    return FakeApiClient()


@pytest.fixture
def listener_config():
    return ListenerConfig(secret=SECRET)


@pytest.fixture
def adapter():
    return ReverseProxyAdapter(host_name=HOST)


@pytest.fixture
def store():
    return MemorySubscriptionStore()


@pytest.fixture
def listener(api_client, adapter, listener_config, store):
    """Listener core marked ready, as the HTTP front-end does after binding."""
    core = EventSubListener(api_client, adapter, listener_config, store=store)
    core._ready_to_subscribe = True
    return core
