from __future__ import annotations

from typing import Any

from ..api.data import DataObject
from ..api.users import HelixUser


class EventSubEvent(DataObject):
    """Base class of typed EventSub events.

    Built from the ``event`` object of a notification payload and the owning
    Helix client. All accessors read the raw payload on demand.
    """

    def _first(self, *keys: str, default: Any = None) -> Any:
        """Return the value of the first key present in the payload."""
        for key in keys:
            if key in self._data:
                return self._data[key]
        return default

    async def _get_user(self, user_id: str | None) -> HelixUser | None:
        if not user_id:
            return None
        return await self._require_client().users.get_user_by_id(user_id)


class BroadcasterEventMixin:
    """Accessors for the ``broadcaster_user_*`` fields most events share."""

    @property
    def broadcaster_id(self) -> str:
        return self._first("broadcaster_user_id", "broadcaster_id")  # type: ignore[attr-defined]

    @property
    def broadcaster_name(self) -> str:
        return self._first("broadcaster_user_login", "broadcaster_login")  # type: ignore[attr-defined]

    @property
    def broadcaster_display_name(self) -> str:
        return self._first("broadcaster_user_name", "broadcaster_name")  # type: ignore[attr-defined]

    async def get_broadcaster(self) -> HelixUser | None:
        """Gets more information about the broadcaster."""
        return await self._get_user(self.broadcaster_id)  # type: ignore[attr-defined]
