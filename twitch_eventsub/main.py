"""
Service entry point: run an EventSub webhook listener configured from the environment
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import aiohttp
from pydantic import ValidationError

from .api import AppTokenProvider, HelixClient
from .config import ListenerConfig, ReverseProxyAdapterConfig, ServiceSettings
from .errors.handling import log_error
from .events import EventSubStreamOfflineEvent
from .eventsub import (
    EventSubHttpListener,
    JsonFileSubscriptionStore,
    MemorySubscriptionStore,
    ReverseProxyAdapter,
)
from .logging_config import LoggerConfigurator

logger = logging.getLogger(__name__)


def _on_stream_offline(event: EventSubStreamOfflineEvent) -> None:
    logger.info(f"📴 {event.broadcaster_display_name} ({event.broadcaster_id}) went offline")


def build_listener(
    session: aiohttp.ClientSession, settings: ServiceSettings, listener_config: ListenerConfig
) -> EventSubHttpListener:
    """Wire the Helix client, adapter and store into a listener."""
    api = HelixClient(
        session,
        settings.client_id,
        AppTokenProvider(settings.client_id, settings.client_secret, session),
    )
    adapter = ReverseProxyAdapter(
        ReverseProxyAdapterConfig(
            host_name=settings.host_name,
            port=settings.port,
            external_port=settings.external_port,
            path_prefix=settings.path_prefix,
        )
    )
    store = (
        JsonFileSubscriptionStore(settings.state_file)
        if settings.state_file
        else MemorySubscriptionStore()
    )
    return EventSubHttpListener(api, adapter, listener_config, store=store)


async def run(settings: ServiceSettings, listener_config: ListenerConfig) -> int:
    """Run the listener until SIGINT/SIGTERM. Returns the process exit code."""
    async with aiohttp.ClientSession() as session:
        listener = build_listener(session, settings, listener_config)
        for user_id in settings.stream_offline_users:
            await listener.subscribe_to_stream_offline_events(user_id, _on_stream_offline)

        result = await listener.start()
        if not result.ok:
            logger.critical(f"💥 Listener failed to start: {result.error}")
            return 1

        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except NotImplementedError:  # pragma: no cover - platform specific
                logger.debug(f"Signal handler for {sig.name} not supported here")
        logger.info(f"👂 Watching {len(listener.subscriptions)} subscription(s), press Ctrl+C to stop")
        await shutdown.wait()

        logger.warning("Signal received - initiating shutdown")
        result = await listener.stop()
        return 0 if result.ok else 1


def health_check() -> int:
    """Validate the environment configuration without starting anything."""
    logger.info("🏥 Health check mode")
    try:
        settings = ServiceSettings.from_env()
        ListenerConfig.from_env()
    except ValidationError as e:
        logger.error(f"❌ Health check failed: {e}")
        return 1
    logger.info(
        f"✅ Health check passed - {len(settings.stream_offline_users)} broadcaster(s) configured"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    LoggerConfigurator().configure()
    args = sys.argv[1:] if argv is None else argv
    if args and args[0] == "--health-check":
        return health_check()

    try:
        settings = ServiceSettings.from_env()
        listener_config = ListenerConfig.from_env()
    except ValidationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    logger.info("🚀 Starting Twitch EventSub listener")
    try:
        return asyncio.run(run(settings, listener_config))
    except KeyboardInterrupt:
        logger.warning("⌨️ Interrupted by user")
        return 0
    except Exception as e:
        log_error("Main application error", e)
        logger.critical(f"Critical error occurred: {e}", exc_info=True)
        return 1
    finally:
        logger.info("🏁 Application shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
