from __future__ import annotations

from typing import TYPE_CHECKING

from .data import DataObject

if TYPE_CHECKING:
    from .helix import HelixClient


class HelixUser(DataObject):
    """A Twitch user."""

    @property
    def id(self) -> str:
        return self._data["id"]

    @property
    def name(self) -> str:
        return self._data["login"]

    @property
    def display_name(self) -> str:
        return self._data["display_name"]

    @property
    def description(self) -> str:
        return self._data.get("description", "")

    @property
    def type(self) -> str:
        return self._data.get("type", "")

    @property
    def broadcaster_type(self) -> str:
        return self._data.get("broadcaster_type", "")

    @property
    def profile_picture_url(self) -> str:
        return self._data.get("profile_image_url", "")


class HelixUsersApi:
    """User lookup endpoints."""

    def __init__(self, client: HelixClient) -> None:
        self._client = client

    async def get_user_by_id(self, user_id: str) -> HelixUser | None:
        """Fetch a user by id; None when Twitch does not know the id."""
        data = await self._client.call("GET", "users", query={"id": user_id})
        rows = data.get("data")
        if isinstance(rows, list) and rows and isinstance(rows[0], dict):
            return HelixUser(rows[0], self._client)
        return None
