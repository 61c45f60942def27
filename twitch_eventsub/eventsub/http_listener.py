"""aiohttp front-end of the EventSub listener.

Routes (``{prefix}`` applies only when the adapter keeps the path prefix on
inbound requests):

- ``GET  {prefix}/``            health check, always ``200 OK``
- ``POST {prefix}/event/{id}``  callback dispatch
- ``POST {prefix}/{id}``        legacy callback path, rejected

Every request is logged once the response has been written, with the final
status. Requests to unknown routes are warned about unless the Host header
already marks them as foreign traffic.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from aiohttp import web
from aiohttp.abc import AbstractAccessLogger

from ..constants import DEFAULT_LISTENER_PORT
from ..errors.eventsub import ListenerStateError, TransportError
from ..logging_config import log_structured_error
from .listener import EventSubListener

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(f"{__name__}.access")


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a start or stop operation."""

    ok: bool
    error: BaseException | None = None


class _RequestLogger(AbstractAccessLogger):
    """Logs method, path and final status after the response is sent."""

    def log(self, request: web.BaseRequest, response: web.StreamResponse, time: float) -> None:
        self.logger.debug(
            f"🌐 {request.method} {request.path} - {response.status} ({time * 1000:.1f} ms)"
        )

    @property
    def enabled(self) -> bool:
        return self.logger.isEnabledFor(logging.DEBUG)


class EventSubHttpListener(EventSubListener):
    """EventSub listener serving callbacks over HTTP(S) with aiohttp.

    Example:
        >>> listener = EventSubHttpListener(api, ReverseProxyAdapter(host_name="example.com"), config)
        >>> result = await listener.start()
        >>> await listener.subscribe_to_stream_offline_events("1234", on_offline)
        >>> await listener.stop()
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._runner: web.AppRunner | None = None
        self._running = False
        self._start_task: asyncio.Task[LifecycleResult] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_port(self) -> int | None:
        """Port the socket is actually bound to, None while not listening."""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    async def __aenter__(self) -> EventSubHttpListener:
        result = await self.start()
        if not result.ok:
            raise result.error or TransportError("Listener failed to start", operation_type="start")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._running:
            await self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[LifecycleResult]:
        """Start listening; must be called from within a running event loop.

        The running flag flips synchronously, so a second call raises even
        before the returned task completes.

        Returns:
            asyncio.Task[LifecycleResult]: Completes once the socket is bound
            and existing subscriptions are resumed, or binding failed.

        Raises:
            ListenerStateError: If the listener is already running.
        """
        if self._running:
            raise ListenerStateError("Trying to start while already running", operation_type="start")
        loop = asyncio.get_running_loop()
        self._running = True
        self._start_task = loop.create_task(self._start_server(), name="eventsub-listener-start")
        return self._start_task

    def stop(self) -> asyncio.Task[LifecycleResult]:
        """Suspend all subscriptions and close the socket.

        Returns:
            asyncio.Task[LifecycleResult]: Completes once the socket is closed.
            A close failure is reported in the result, not raised.

        Raises:
            ListenerStateError: If the listener is not running.
        """
        if not self._running:
            raise ListenerStateError("Trying to stop while not running", operation_type="stop")
        loop = asyncio.get_running_loop()
        self._running = False
        return loop.create_task(self._stop_server(), name="eventsub-listener-stop")

    async def _start_server(self) -> LifecycleResult:
        port = self._adapter.listener_port
        if port is None:
            port = DEFAULT_LISTENER_PORT
        runner = web.AppRunner(
            self._build_app(),
            access_log_class=_RequestLogger,
            access_log=access_logger,
            handle_signals=False,
        )
        try:
            await runner.setup()
            site = self._adapter.create_site(runner, port)
            await site.start()
        except OSError as e:
            log_structured_error(
                "transport",
                f"Could not listen on port {port}",
                exception=e,
                level=logging.CRITICAL,
            )
            await runner.cleanup()
            self._running = False
            error = TransportError(f"Could not listen on port {port}: {e}", operation_type="start")
            error.__cause__ = e
            return LifecycleResult(False, error)

        self._runner = runner
        logger.info(f"🚀 EventSub listener listening on port {self.bound_port or port}")
        if not self._running:
            # stop() was requested while binding
            return LifecycleResult(True)
        self._ready_to_subscribe = True
        await self._resume_existing_subscriptions()
        return LifecycleResult(True)

    async def _stop_server(self) -> LifecycleResult:
        start_task = self._start_task
        self._start_task = None
        if start_task is not None and not start_task.done():
            await start_task
        self._ready_to_subscribe = False
        await self._suspend_all()

        runner = self._runner
        self._runner = None
        if runner is None:
            return LifecycleResult(True)
        try:
            await runner.cleanup()
        except Exception as e:
            log_structured_error(
                "transport", "Failed to close the listener socket", exception=e, level=logging.CRITICAL
            )
            return LifecycleResult(False, e)
        logger.info("🛑 EventSub listener stopped")
        return LifecycleResult(True)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _handler_prefix(self) -> str:
        if self._adapter.use_path_prefix_in_handlers:
            return self._adapter.path_prefix or ""
        return ""

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._unknown_route_middleware])
        prefix = self._handler_prefix()
        app.router.add_get(f"{prefix}/", self._handle_health)
        if prefix:
            app.router.add_get(prefix, self._handle_health)
        app.router.add_post(f"{prefix}/event/{{id}}", self._handle_event)
        app.router.add_post(f"{prefix}/{{id}}", self._handle_legacy_event)
        return app

    @web.middleware
    async def _unknown_route_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException as e:
            if e.status in (404, 405) and not await self._is_host_denied(request.headers.get("Host")):
                logger.warning(
                    f"⚠️ Access to unknown URL/method attempted: {request.method} {request.path}"
                )
            raise

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    async def _handle_legacy_event(self, request: web.Request) -> web.Response:
        if await self._is_host_denied(request.headers.get("Host")):
            return web.Response(status=404, text="Not OK")
        key = request.match_info["id"]
        logger.warning(f"⚠️ Callback on legacy path for {key}, subscription must be recreated")
        return web.Response(
            status=self._config.legacy_rejection_status,
            text=f"This callback path is no longer supported, use {self._handler_prefix()}/event/{key}",
        )

    async def _handle_event(self, request: web.Request) -> web.Response:
        body = await request.read()
        result = await self.dispatch(
            request.match_info["id"], request.headers, body, host=request.headers.get("Host")
        )
        return web.Response(status=result.status, text=result.body)
