from __future__ import annotations

from ..api.users import HelixUser
from .base import EventSubEvent


class EventSubUserUpdateEvent(EventSubEvent):
    """A user updating their account details."""

    @property
    def user_id(self) -> str:
        return self._data["user_id"]

    @property
    def user_name(self) -> str:
        return self._data.get("user_login", "")

    @property
    def user_display_name(self) -> str:
        return self._data.get("user_name", "")

    @property
    def user_description(self) -> str:
        return self._data.get("description", "")

    @property
    def user_email(self) -> str | None:
        """Only present when the app holds the ``user:read:email`` scope."""
        return self._data.get("email")

    @property
    def user_email_is_verified(self) -> bool:
        return bool(self._data.get("email_verified", False))

    async def get_user(self) -> HelixUser | None:
        return await self._get_user(self.user_id)


class EventSubUserAuthorizationRevokeEvent(EventSubEvent):
    """A user revoking the authorization of the application."""

    @property
    def client_id(self) -> str:
        return self._data["client_id"]

    @property
    def user_id(self) -> str:
        return self._data["user_id"]

    @property
    def user_name(self) -> str | None:
        """None if the user no longer exists."""
        return self._data.get("user_login")

    @property
    def user_display_name(self) -> str | None:
        return self._data.get("user_name")
