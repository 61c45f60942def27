"""Thin asynchronous Twitch Helix API client.

Wraps only the endpoints the EventSub listener needs. If new endpoints are
needed, prefer adding focused methods on a sub-API instead of sprinkling raw
request logic across modules.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from functools import cached_property
from typing import Any

import aiohttp

from ..constants import HELIX_BASE_URL
from ..errors.api import NetworkError, error_for_status
from .auth import TokenProvider

logger = logging.getLogger(__name__)

QueryValue = str | int | Sequence[str]


class HelixClient:
    """Asynchronous client for Twitch Helix API endpoints.

    This is the call-issuing capability the EventSub layer depends on: every
    call is authenticated through the token provider and either returns the
    parsed JSON body or raises a typed error.

    Attributes:
        BASE_URL (str): The base URL for Twitch Helix API.
    """

    BASE_URL = HELIX_BASE_URL

    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_id: str,
        token_provider: TokenProvider,
        *,
        base_url: str | None = None,
    ):
        """Initialize the HelixClient.

        Args:
            session (aiohttp.ClientSession): The aiohttp session to use for requests.
            client_id (str): Twitch application client ID.
            token_provider (TokenProvider): Source of bearer tokens.
            base_url (str | None): Override of the Helix base URL (mock servers).

        Raises:
            ValueError: If session or client_id is not provided.
        """
        if not session:
            raise ValueError("aiohttp session required")
        if not client_id:
            raise ValueError("client_id required")
        self._session = session
        self.client_id = client_id
        self._token_provider = token_provider
        self._base_url = (base_url or self.BASE_URL).rstrip("/")

    @cached_property
    def eventsub(self):
        """EventSub subscription endpoints."""
        from .eventsub import HelixEventSubApi

        return HelixEventSubApi(self)

    @cached_property
    def users(self):
        """User endpoints."""
        from .users import HelixUsersApi

        return HelixUsersApi(self)

    async def call(
        self,
        method: str,
        endpoint: str,
        *,
        scopes: Sequence[str] | None = None,
        user_id: str | None = None,
        query: Mapping[str, QueryValue] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform an authenticated HTTP request to the Twitch Helix API.

        Args:
            method (str): HTTP method (e.g., 'GET', 'POST').
            endpoint (str): API endpoint path (without base URL).
            scopes (Sequence[str] | None): Scopes the call requires, passed to the token provider.
            user_id (str | None): User whose token should be used; None for the app token.
            query (Mapping[str, QueryValue] | None): Query parameters; sequences repeat the key.
            json_body (Mapping[str, Any] | None): JSON body for the request.

        Returns:
            dict[str, Any]: The parsed JSON response, ``{}`` for 204 No Content.

        Raises:
            HelixApiError: Typed subclass for any non-2xx status.
            NetworkError: If the request could not be performed.
        """
        token = await self._token_provider.get_access_token(user_id, scopes)
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        params = self._build_params(query)
        try:
            async with self._session.request(
                method,
                url,
                headers=self._auth_headers(token, self.client_id),
                params=params,
                json=dict(json_body) if json_body is not None else None,
            ) as resp:
                logger.debug(
                    f"Helix response: status={resp.status}, method={method}, endpoint={endpoint}"
                )
                data = await self._read_json(resp)
                if not 200 <= resp.status < 300:
                    raise error_for_status(resp.status, endpoint, data, dict(resp.headers))
                return data
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            raise NetworkError(
                f"Network connectivity issue in Helix {method} {endpoint}: {str(e)}"
            ) from e

    async def paginate(
        self,
        endpoint: str,
        *,
        query: Mapping[str, QueryValue] | None = None,
        scopes: Sequence[str] | None = None,
        user_id: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate over all entries of a cursor-paginated GET endpoint.

        Yields:
            dict[str, Any]: Each entry of every page's ``data`` list.
        """
        params: dict[str, QueryValue] = dict(query or {})
        while True:
            page = await self.call(
                "GET", endpoint, scopes=scopes, user_id=user_id, query=params
            )
            rows = page.get("data")
            if isinstance(rows, list):
                for row in rows:
                    if isinstance(row, dict):
                        yield row
            pagination = page.get("pagination")
            cursor = pagination.get("cursor") if isinstance(pagination, dict) else None
            if not cursor or not rows:
                return
            params["after"] = cursor

    # ---- internal helpers ----
    @staticmethod
    def _build_params(
        query: Mapping[str, QueryValue] | None,
    ) -> list[tuple[str, str]] | None:
        """Flatten query values into aiohttp's list-of-pairs form."""
        if not query:
            return None
        out: list[tuple[str, str]] = []
        for key, value in query.items():
            if isinstance(value, str | int):
                out.append((key, str(value)))
            else:
                out.extend((key, str(v)) for v in value)
        return out

    @staticmethod
    def _auth_headers(access_token: str, client_id: str) -> dict[str, str]:
        """Generate authorization headers for Twitch API requests."""
        return {
            "Authorization": f"Bearer {access_token}",
            "Client-Id": client_id,
            "Content-Type": "application/json",
        }

    @staticmethod
    async def _read_json(resp: aiohttp.ClientResponse) -> dict[str, Any]:
        """Parse a response body, tolerating empty and non-JSON bodies."""
        if resp.status == 204:
            return {}
        try:
            data = await resp.json(content_type=None)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
