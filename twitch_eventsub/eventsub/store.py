"""Persistence adapters for resumable subscription state.

The listener records every registered subscription (local key, remote id,
event kind, scoping params) so a restarted process can adopt the remote
subscriptions that are still alive instead of registering duplicates.
Storage is pluggable through :class:`SubscriptionStore`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors.eventsub import StoreError

logger = logging.getLogger(__name__)


class SubscriptionRecord(BaseModel):
    """Persisted shape of one subscription.

    Attributes:
        key: Local subscription key, e.g. ``channel.ban.123``.
        remote_id: Subscription id assigned by Twitch.
        event_type: Remote EventSub type, e.g. ``channel.ban``.
        kind: Event kind registry name.
        params: Scoping parameters the subscription was created with.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    remote_id: str | None = None
    event_type: str
    kind: str
    params: dict[str, str] = Field(default_factory=dict)


class SubscriptionStore(ABC):
    """Contract of a subscription state backend."""

    @abstractmethod
    async def load(self) -> list[SubscriptionRecord]:
        """Return all records in insertion order."""

    @abstractmethod
    async def save(self, record: SubscriptionRecord) -> None:
        """Insert or replace the record with the same key."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove the record with the given key, if present."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all records."""

    async def get(self, key: str) -> SubscriptionRecord | None:
        for record in await self.load():
            if record.key == key:
                return record
        return None


class MemorySubscriptionStore(SubscriptionStore):
    """Process-local store; state does not survive a restart."""

    def __init__(self) -> None:
        self._records: dict[str, SubscriptionRecord] = {}

    async def load(self) -> list[SubscriptionRecord]:
        return list(self._records.values())

    async def save(self, record: SubscriptionRecord) -> None:
        self._records[record.key] = record

    async def remove(self, key: str) -> None:
        self._records.pop(key, None)

    async def clear(self) -> None:
        self._records.clear()


class JsonFileSubscriptionStore(SubscriptionStore):
    """JSON file backed store with concurrency control and atomic writes.

    The file holds a list of record objects. Reads and writes run in the
    default executor and are serialised with an ``asyncio.Lock``; writes go to
    a temporary file that atomically replaces the target. A corrupted file is
    backed up to ``<path>.corrupted`` and treated as empty.

    Example:
        >>> store = JsonFileSubscriptionStore("state/eventsub.json")
        >>> await store.save(SubscriptionRecord(key="stream.offline.1", remote_id="abc",
        ...                                     event_type="stream.offline", kind="stream_offline",
        ...                                     params={"user_id": "1"}))
    """

    def __init__(self, path: str) -> None:
        """Initialize the store.

        Args:
            path (str): Path to the JSON state file. The directory is created on first write.

        Raises:
            ValueError: If path is empty.
        """
        if not path:
            raise ValueError("path cannot be empty")
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    async def _read(self) -> list[SubscriptionRecord]:
        loop = asyncio.get_running_loop()

        def _read_file() -> Any:
            if not os.path.exists(self._path):
                return []
            with open(self._path, encoding="utf-8") as f:
                content = f.read()
            if not content.strip():
                return []
            return json.loads(content)

        try:
            raw = await loop.run_in_executor(None, _read_file)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                f"⚠️ Corrupted subscription state in {self._path}, starting empty: {e}"
            )
            self._backup_corrupted()
            return []
        except OSError as e:
            raise StoreError(
                f"Failed to load subscription state from {self._path}: {e}",
                operation_type="load_state",
            ) from e

        if not isinstance(raw, list):
            logger.warning(f"⚠️ Unexpected subscription state layout in {self._path}, ignoring")
            return []
        records: list[SubscriptionRecord] = []
        for entry in raw:
            try:
                records.append(SubscriptionRecord.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping invalid subscription record: {e.errors()[0]['msg']}")
        return records

    def _backup_corrupted(self) -> None:
        backup_path = f"{self._path}.corrupted"
        try:
            os.replace(self._path, backup_path)
            logger.info(f"Backed up corrupted subscription state to {backup_path}")
        except OSError:
            logger.debug(f"Could not back up corrupted state file {self._path}")

    async def _write(self, records: list[SubscriptionRecord]) -> None:
        loop = asyncio.get_running_loop()
        payload = [r.model_dump() for r in records]
        directory = os.path.dirname(os.path.abspath(self._path))

        def _write_atomic() -> None:
            os.makedirs(directory, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=directory,
                prefix=os.path.basename(self._path) + ".tmp",
                suffix=".json",
            )
            try:
                with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(temp_path, self._path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

        try:
            await loop.run_in_executor(None, _write_atomic)
        except OSError as e:
            raise StoreError(
                f"Failed to save subscription state to {self._path}: {e}",
                operation_type="save_state",
            ) from e

    async def load(self) -> list[SubscriptionRecord]:
        async with self._lock:
            return await self._read()

    async def save(self, record: SubscriptionRecord) -> None:
        async with self._lock:
            records = await self._read()
            for i, existing in enumerate(records):
                if existing.key == record.key:
                    records[i] = record
                    break
            else:
                records.append(record)
            await self._write(records)

    async def remove(self, key: str) -> None:
        async with self._lock:
            records = await self._read()
            remaining = [r for r in records if r.key != key]
            if len(remaining) != len(records):
                await self._write(remaining)

    async def clear(self) -> None:
        async with self._lock:
            await self._write([])
