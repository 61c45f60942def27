"""Connection adapters.

An adapter describes how Twitch reaches the listener: the public host name
and port used in callback URLs, the path prefix, and the local socket the
listener binds. Adapters are created by the caller and injected into the
listener, which never recreates them.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import ssl
from abc import ABC, abstractmethod

from aiohttp import web

from ..config.model import DirectConnectionAdapterConfig, ReverseProxyAdapterConfig
from ..constants import DEFAULT_EXTERNAL_PORT

logger = logging.getLogger(__name__)


class ConnectionAdapter(ABC):
    """Strategy for making the listener reachable."""

    @abstractmethod
    async def get_host_name(self) -> str:
        """Externally visible host name. May need a network lookup."""

    async def get_external_port(self) -> int:
        """Externally visible port used in callback URLs."""
        return self.listener_port or DEFAULT_EXTERNAL_PORT

    @property
    def path_prefix(self) -> str | None:
        return None

    @property
    def listener_port(self) -> int | None:
        """Local port to bind; None lets the listener use its default."""
        return None

    @property
    def use_path_prefix_in_handlers(self) -> bool:
        """Whether inbound request paths still include the prefix."""
        return False

    @property
    def bind_host(self) -> str:
        return "0.0.0.0"

    @property
    def ssl_context(self) -> ssl.SSLContext | None:
        return None

    def create_site(self, runner: web.AppRunner, port: int) -> web.BaseSite:
        """Create the listenable site for an already set-up runner."""
        return web.TCPSite(runner, host=self.bind_host, port=port, ssl_context=self.ssl_context)


class ReverseProxyAdapter(ConnectionAdapter):
    """Adapter for a listener behind a TLS-terminating reverse proxy.

    Host name and external port are static; the listener itself binds a
    plain HTTP port the proxy forwards to.
    """

    def __init__(self, config: ReverseProxyAdapterConfig | None = None, **options) -> None:
        self._config = config or ReverseProxyAdapterConfig(**options)

    async def get_host_name(self) -> str:
        return self._config.host_name

    async def get_external_port(self) -> int:
        return self._config.external_port

    @property
    def path_prefix(self) -> str | None:
        return self._config.path_prefix

    @property
    def listener_port(self) -> int | None:
        return self._config.port

    @property
    def use_path_prefix_in_handlers(self) -> bool:
        return self._config.use_path_prefix_in_handlers

    @property
    def bind_host(self) -> str:
        return self._config.bind_host


class EnvPortAdapter(ReverseProxyAdapter):
    """Reverse proxy adapter taking the local port from the ``PORT`` env var.

    Intended for platforms that route external HTTPS traffic to a port they
    assign at runtime.
    """

    def __init__(self, host_name: str, *, path_prefix: str | None = None, env_var: str = "PORT") -> None:
        raw_port = os.environ.get(env_var)
        if not raw_port or not raw_port.isdigit():
            raise ValueError(f"{env_var} environment variable must hold a port number")
        super().__init__(
            ReverseProxyAdapterConfig(
                host_name=host_name, port=int(raw_port), path_prefix=path_prefix
            )
        )


class DirectConnectionAdapter(ConnectionAdapter):
    """Adapter that binds the public socket itself, optionally with TLS.

    When no host name is configured, the local fully qualified domain name is
    resolved off the event loop on first use and cached.
    """

    def __init__(self, config: DirectConnectionAdapterConfig | None = None, **options) -> None:
        self._config = config or DirectConnectionAdapterConfig(**options)
        self._resolved_host: str | None = self._config.host_name
        self._ssl_context: ssl.SSLContext | None = None
        if self._config.ssl_cert_file and self._config.ssl_key_file:
            context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
            context.load_cert_chain(self._config.ssl_cert_file, self._config.ssl_key_file)
            self._ssl_context = context

    async def get_host_name(self) -> str:
        if self._resolved_host is None:
            loop = asyncio.get_running_loop()
            host = await loop.run_in_executor(None, socket.getfqdn)
            if not host:
                raise OSError("Could not determine local host name")
            logger.debug(f"🌐 Resolved listener host name to {host}")
            self._resolved_host = host
        return self._resolved_host

    async def get_external_port(self) -> int:
        return self._config.listener_port

    @property
    def path_prefix(self) -> str | None:
        return self._config.path_prefix

    @property
    def listener_port(self) -> int | None:
        return self._config.listener_port

    @property
    def use_path_prefix_in_handlers(self) -> bool:
        # Nothing strips the prefix before requests arrive
        return True

    @property
    def bind_host(self) -> str:
        return self._config.bind_host

    @property
    def ssl_context(self) -> ssl.SSLContext | None:
        return self._ssl_context
