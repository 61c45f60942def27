"""Helix EventSub subscription endpoints."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..constants import EVENTSUB_SUBSCRIPTIONS
from ..errors.api import HelixApiError
from .data import DataObject, parse_timestamp

if TYPE_CHECKING:
    from .helix import HelixClient

logger = logging.getLogger(__name__)


class HelixEventSubSubscription(DataObject):
    """A subscription as known by the remote service."""

    @property
    def id(self) -> str:
        return self._data["id"]

    @property
    def status(self) -> str:
        return self._data.get("status", "")

    @property
    def type(self) -> str:
        return self._data["type"]

    @property
    def version(self) -> str:
        return self._data.get("version", "1")

    @property
    def condition(self) -> Mapping[str, Any]:
        return self._data.get("condition") or {}

    @property
    def transport_method(self) -> str | None:
        transport = self._data.get("transport") or {}
        return transport.get("method")

    @property
    def callback(self) -> str | None:
        """The webhook callback URL, None for non-webhook transports."""
        transport = self._data.get("transport") or {}
        return transport.get("callback")

    @property
    def creation_date(self) -> datetime | None:
        return parse_timestamp(self._data.get("created_at"))

    @property
    def cost(self) -> int:
        return int(self._data.get("cost", 0))

    async def unsubscribe(self) -> None:
        """Delete this subscription on the remote service."""
        await self._require_client().eventsub.delete_subscription(self.id)


class HelixEventSubApi:
    """Create, list and delete EventSub subscriptions.

    All calls use the app access token (``user_id=None``).
    """

    def __init__(self, client: HelixClient) -> None:
        self._client = client

    async def create_subscription(
        self,
        type: str,  # noqa: A002
        version: str,
        condition: Mapping[str, str],
        transport: Mapping[str, Any],
    ) -> HelixEventSubSubscription:
        """Register a subscription.

        Args:
            type: EventSub subscription type, e.g. ``channel.ban``.
            version: Subscription type version.
            condition: Scoping condition.
            transport: Transport description (method, callback, secret).

        Returns:
            HelixEventSubSubscription: The created subscription (status pending verification).

        Raises:
            HelixApiError: If Twitch rejects the subscription.
        """
        body = {
            "type": type,
            "version": version,
            "condition": dict(condition),
            "transport": dict(transport),
        }
        data = await self._client.call("POST", EVENTSUB_SUBSCRIPTIONS, json_body=body)
        rows = data.get("data")
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise HelixApiError(
                f"EventSub subscription for {type} created but no subscription returned",
                status=202,
                endpoint=EVENTSUB_SUBSCRIPTIONS,
                body=data,
            )
        return HelixEventSubSubscription(rows[0], self._client)

    async def delete_subscription(self, remote_id: str) -> None:
        """Delete a subscription by its remote id.

        Raises:
            HelixNotFoundError: If the subscription does not exist.
            HelixApiError: For any other rejection.
        """
        await self._client.call("DELETE", EVENTSUB_SUBSCRIPTIONS, query={"id": remote_id})
        logger.debug(f"✅ EventSub subscription {remote_id} deleted")

    async def list_subscriptions(
        self, *, status: str | None = None, type: str | None = None  # noqa: A002
    ) -> list[HelixEventSubSubscription]:
        """List all subscriptions owned by the app, following pagination."""
        query: dict[str, str] = {}
        if status:
            query["status"] = status
        if type:
            query["type"] = type
        return [
            HelixEventSubSubscription(row, self._client)
            async for row in self._client.paginate(EVENTSUB_SUBSCRIPTIONS, query=query)
        ]
