"""Access token providers for the Helix client.

EventSub webhook subscriptions are managed with an app access token, so the
default provider implements the client credentials grant. Providers are
asked for a token per call with the requesting user id and scopes, which
lets user-token providers pick the right credential.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Protocol

import aiohttp

from ..constants import OAUTH_TOKEN_URL, TOKEN_REFRESH_SAFETY_BUFFER_SECONDS
from ..errors.api import HelixAuthorizationError, NetworkError

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Supplies bearer tokens for Helix calls."""

    async def get_access_token(
        self, user_id: str | None = None, scopes: Sequence[str] | None = None
    ) -> str:
        """Return a valid access token for the given user (None = app)."""
        ...


class StaticTokenProvider:
    """Provider returning a fixed, externally managed token."""

    def __init__(self, access_token: str) -> None:
        if not access_token:
            raise ValueError("access_token required")
        self._access_token = access_token

    async def get_access_token(
        self, user_id: str | None = None, scopes: Sequence[str] | None = None
    ) -> str:
        return self._access_token


class AppTokenProvider:
    """Client credentials grant with in-memory caching.

    The token is reused until ``expires_in`` minus the safety buffer has
    elapsed. Concurrent callers share a single refresh.

    Args:
        client_id: Twitch application client ID.
        client_secret: Twitch application client secret.
        session: aiohttp session used for the token request.
    """

    def __init__(
        self, client_id: str, client_secret: str, session: aiohttp.ClientSession
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session
        self._access_token: str | None = None
        self._expiry: datetime | None = None
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        self._access_token = None
        self._expiry = None

    async def get_access_token(
        self, user_id: str | None = None, scopes: Sequence[str] | None = None
    ) -> str:
        async with self._lock:
            if self._access_token and (
                self._expiry is None or datetime.now(UTC) < self._expiry
            ):
                return self._access_token
            return await self._fetch()

    async def _fetch(self) -> str:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        timeout = aiohttp.ClientTimeout(total=30)
        try:
            async with self.session.post(OAUTH_TOKEN_URL, data=data, timeout=timeout) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                if resp.status != 200 or not isinstance(body, dict):
                    raise HelixAuthorizationError(
                        f"App token request failed with HTTP {resp.status}",
                        status=resp.status,
                        endpoint="oauth2/token",
                        body=body if isinstance(body, dict) else None,
                    )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise NetworkError(f"App token request failed: {str(e)}") from e

        token = body.get("access_token")
        if not isinstance(token, str) or not token:
            raise HelixAuthorizationError(
                "Missing access_token in token response",
                status=200,
                endpoint="oauth2/token",
                body=body,
            )
        expires_in = body.get("expires_in")
        if isinstance(expires_in, int | float):
            safe = max(int(expires_in) - TOKEN_REFRESH_SAFETY_BUFFER_SECONDS, 0)
            self._expiry = datetime.now(UTC) + timedelta(seconds=safe)
        else:
            self._expiry = None
        self._access_token = token
        logger.info("🔑 Obtained app access token")
        return token
