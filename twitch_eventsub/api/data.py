"""Read-only wrappers over raw Helix / EventSub JSON payloads."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .helix import HelixClient


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC3339 timestamp as sent by Twitch.

    Twitch sends fractional seconds with up to nanosecond precision, which
    ``datetime.fromisoformat`` does not accept, so the fraction is cut to
    microseconds first.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    return datetime.fromisoformat(text)


class DataObject:
    """Immutable view over a raw JSON payload.

    Args:
        data: Raw payload; deep-copied so later mutation by the caller has no effect.
        client: Owning Helix client used by relation getters, may be None.
    """

    __slots__ = ("_data", "_client")

    def __init__(self, data: Mapping[str, Any], client: HelixClient | None = None) -> None:
        self._data: Mapping[str, Any] = MappingProxyType(copy.deepcopy(dict(data)))
        self._client = client

    @property
    def raw(self) -> Mapping[str, Any]:
        """The raw payload as a read-only mapping."""
        return self._data

    def _require_client(self) -> HelixClient:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} has no API client attached")
        return self._client

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self._data)!r})"
