"""Transport independent core of the EventSub webhook listener.

:class:`EventSubListener` owns the subscription map, registers and deletes
subscriptions through the Helix API, and turns one inbound callback
(key, headers, body, host) into a response via :meth:`EventSubListener.dispatch`.
Serving HTTP is left to subclasses such as
:class:`~twitch_eventsub.eventsub.http_listener.EventSubHttpListener`.

Lifecycle operations on one key (subscribe, unsubscribe, revocation) are
serialised by a per-key lock. Dispatch lookups never take that lock: Twitch
sends the verification challenge while the registration call that triggered
it is still awaiting its response.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ..constants import (
    HEADER_MESSAGE_ID,
    HEADER_MESSAGE_TYPE,
    HEADER_MESSAGE_TIMESTAMP,
    HEADER_MESSAGE_SIGNATURE,
    MESSAGE_TYPE_NOTIFICATION,
    MESSAGE_TYPE_REVOCATION,
    MESSAGE_TYPE_VERIFICATION,
    REMOTE_STATUS_ENABLED,
    REMOTE_STATUS_VERIFICATION_PENDING,
)
from ..errors.api import HelixApiError, HelixConflictError, HelixNotFoundError, NetworkError
from ..errors.eventsub import (
    MessageProcessingError,
    StoreError,
    SubscriptionError,
    VerificationError,
)
from ..errors.handling import log_error
from ..events import EventSubEvent
from ..logging_config import log_structured_error
from ..utils.retry import retry_transient
from .adapters import ConnectionAdapter
from .dedup import RecentMessageCache
from .kinds import get_event_kind
from .signature import is_timestamp_fresh, verify_signature
from .store import MemorySubscriptionStore, SubscriptionRecord, SubscriptionStore
from .subscription import EventHandler, EventSubSubscription, SubscriptionStatus

if TYPE_CHECKING:
    from ..api.eventsub import HelixEventSubSubscription
    from ..api.helix import HelixClient
    from ..config.model import ListenerConfig

logger = logging.getLogger(__name__)

_LIVE_REMOTE_STATUSES = (REMOTE_STATUS_ENABLED, REMOTE_STATUS_VERIFICATION_PENDING)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one inbound callback: status code and plain text body."""

    status: int
    body: str = ""


_NOT_FOUND = DispatchResult(404, "Not OK")
_FORBIDDEN = DispatchResult(403, "Not OK")
_BAD_REQUEST = DispatchResult(400, "Not OK")
_ACCEPTED = DispatchResult(200)


class EventSubListener:
    """Receives EventSub callbacks and routes them to subscription handlers.

    Args:
        api_client: Helix client used to create, list and delete subscriptions.
        adapter: Connection adapter providing host name, port and path prefix.
        config: Listener settings (secret, host check, handler timeout, ...).
        store: Persistence for resumable state; in-memory when omitted.
    """

    def __init__(
        self,
        api_client: HelixClient,
        adapter: ConnectionAdapter,
        config: ListenerConfig,
        *,
        store: SubscriptionStore | None = None,
    ) -> None:
        self._api_client = api_client
        self._adapter = adapter
        self._config = config
        self._store = store or MemorySubscriptionStore()
        self._subscriptions: dict[str, EventSubSubscription] = {}
        # Per-key lock and the number of callers holding or waiting for it
        self._key_locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self._recent_messages = RecentMessageCache(config.dedup_cache_size)
        self._handler_tasks: set[asyncio.Task[Any]] = set()
        self._ready_to_subscribe = False

    @property
    def api_client(self) -> HelixClient:
        return self._api_client

    @property
    def adapter(self) -> ConnectionAdapter:
        return self._adapter

    @property
    def config(self) -> ListenerConfig:
        return self._config

    @property
    def store(self) -> SubscriptionStore:
        return self._store

    @property
    def ready_to_subscribe(self) -> bool:
        """True once the listener accepts callbacks and registers subscriptions remotely."""
        return self._ready_to_subscribe

    @property
    def subscriptions(self) -> Mapping[str, EventSubSubscription]:
        """Read-only snapshot of the tracked subscriptions by key."""
        return MappingProxyType(dict(self._subscriptions))

    def get_subscription(self, key: str) -> EventSubSubscription | None:
        return self._subscriptions.get(key)

    # ------------------------------------------------------------------
    # Subscribing
    # ------------------------------------------------------------------

    async def subscribe_to_channel_ban_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to bans in a broadcaster's channel."""
        return await self.subscribe("channel_ban", {"user_id": user_id}, handler)

    async def subscribe_to_user_update_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        return await self.subscribe("user_update", {"user_id": user_id}, handler)

    async def subscribe_to_channel_raid_events_from(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to raids started by a broadcaster."""
        return await self.subscribe("channel_raid_from", {"user_id": user_id}, handler)

    async def subscribe_to_channel_raid_events_to(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to raids targeting a broadcaster."""
        return await self.subscribe("channel_raid_to", {"user_id": user_id}, handler)

    async def subscribe_to_channel_subscription_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        return await self.subscribe("channel_subscription", {"user_id": user_id}, handler)

    async def subscribe_to_channel_hype_train_progress_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        return await self.subscribe("channel_hype_train_progress", {"user_id": user_id}, handler)

    async def subscribe_to_channel_redemption_add_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to channel point redemptions of any reward."""
        return await self.subscribe("channel_redemption_add", {"user_id": user_id}, handler)

    async def subscribe_to_channel_redemption_add_events_for_reward(
        self, user_id: str, reward_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to channel point redemptions of a single reward."""
        return await self.subscribe(
            "channel_redemption_add_for_reward",
            {"user_id": user_id, "reward_id": reward_id},
            handler,
        )

    async def subscribe_to_channel_charity_campaign_progress_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        return await self.subscribe(
            "channel_charity_campaign_progress", {"user_id": user_id}, handler
        )

    async def subscribe_to_stream_offline_events(
        self, user_id: str, handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to a broadcaster's stream going offline."""
        return await self.subscribe("stream_offline", {"user_id": user_id}, handler)

    async def subscribe_to_user_authorization_revoke_events(
        self, handler: EventHandler, client_id: str | None = None
    ) -> EventSubSubscription:
        """Subscribe to users revoking the app's authorization.

        Args:
            handler: Callback receiving the revoke events.
            client_id: Application client id, defaults to the API client's.
        """
        return await self.subscribe(
            "user_authorization_revoke",
            {"client_id": client_id or self._api_client.client_id},
            handler,
        )

    async def subscribe(
        self, kind_name: str, params: Mapping[str, Any], handler: EventHandler
    ) -> EventSubSubscription:
        """Subscribe to any registered event kind.

        Subscribing is idempotent per key: while a pending or verified
        subscription exists for the key it is returned unchanged. Failed,
        revoked and suspended ones are replaced.

        Before the listener is ready the subscription is only tracked; it is
        registered remotely once the listener starts.

        Args:
            kind_name: Registry name of the event kind, e.g. ``channel_ban``.
            params: Scoping parameters of the kind.
            handler: Sync or async callable receiving the typed events.

        Returns:
            EventSubSubscription: The tracked subscription.

        Raises:
            SubscriptionError: For an unknown kind or missing parameters.
            HelixApiError: If Twitch rejects the registration.
            NetworkError: If Twitch could not be reached.
        """
        kind = get_event_kind(kind_name)
        clean = kind.validate_params(params)
        key = kind.key(clean)
        async with self._key_lock(key):
            existing = self._subscriptions.get(key)
            if existing is not None and existing.is_active:
                logger.debug(f"Subscription {key} already exists, reusing it")
                return existing
            subscription = EventSubSubscription(kind, clean, handler, self)
            self._subscriptions[key] = subscription
            if not self._ready_to_subscribe:
                logger.debug(f"📝 Subscription {key} tracked, registering once the listener is ready")
                return subscription
            try:
                await self._activate(subscription, record=await self._load_record(key), remote=None)
            except Exception:
                if self._subscriptions.get(key) is subscription:
                    del self._subscriptions[key]
                raise
            logger.info(f"📡 Subscribed to {kind.type} ({key})")
            return subscription

    async def unsubscribe(self, key: str) -> bool:
        """Stop and forget the subscription with the given key.

        Returns:
            bool: True if a subscription was tracked under the key.
        """
        async with self._key_lock(key):
            subscription = self._subscriptions.pop(key, None)
            if subscription is None:
                return False
            await subscription.suspend()
        logger.info(f"🗑️ Unsubscribed {key}")
        return True

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        """Hold the lifecycle lock of one key.

        The lock only exists while someone holds or waits for it, so keys that
        left the map leave no entry behind.
        """
        lock, users = self._key_locks.get(key) or (asyncio.Lock(), 0)
        self._key_locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._key_locks[key]
            if users > 1:
                self._key_locks[key] = (lock, users - 1)
            else:
                del self._key_locks[key]

    async def _activate(
        self,
        subscription: EventSubSubscription,
        *,
        record: SubscriptionRecord | None,
        remote: Mapping[str, HelixEventSubSubscription] | None,
    ) -> None:
        """Adopt a live remote subscription from a previous run, else register.

        Args:
            subscription: The local subscription to activate.
            record: Persisted state for its key, if any.
            remote: Remote subscriptions by id; listed on demand when None.
        """
        if record is not None and record.remote_id:
            if remote is None:
                remote = await self._list_remote_subscriptions()
            live = remote.get(record.remote_id) if remote is not None else None
            if live is not None and live.status in _LIVE_REMOTE_STATUSES:
                callback = await self._build_callback_url(subscription.key)
                if live.callback == callback and live.type == subscription.kind.type:
                    subscription._adopt(live.id, verified=live.status == REMOTE_STATUS_ENABLED)
                    return
        await subscription.register()

    async def _subscribe(self, subscription: EventSubSubscription) -> HelixEventSubSubscription:
        """Create the remote subscription and persist its id.

        A conflict means Twitch already holds the same subscription; when it
        points at our callback it is adopted instead of failing.
        """
        kind = subscription.kind
        transport = await self._build_transport(subscription.key)
        try:
            remote = await self._api_client.eventsub.create_subscription(
                kind.type, kind.version, kind.build_condition(subscription.params), transport
            )
        except HelixConflictError:
            existing = await self._find_remote_by_callback(transport["callback"], kind.type)
            if existing is None:
                raise
            logger.info(f"♻️ Subscription {subscription.key} already exists remotely as {existing.id}")
            remote = existing
        await self._persist(
            SubscriptionRecord(
                key=subscription.key,
                remote_id=remote.id,
                event_type=kind.type,
                kind=kind.name,
                params=subscription.params,
            )
        )
        return remote

    async def _unsubscribe(self, subscription: EventSubSubscription) -> None:
        """Delete the remote subscription, retrying transient failures."""
        remote_id = subscription.remote_id
        try:
            if remote_id:
                try:
                    await retry_transient(
                        lambda: self._api_client.eventsub.delete_subscription(remote_id)
                    )
                except HelixNotFoundError:
                    logger.debug(f"Remote subscription {remote_id} was already gone")
        finally:
            await self._forget(subscription.key)

    async def _find_remote_by_callback(
        self, callback: str, event_type: str
    ) -> HelixEventSubSubscription | None:
        remote = await self._list_remote_subscriptions()
        for candidate in (remote or {}).values():
            if (
                candidate.callback == callback
                and candidate.type == event_type
                and candidate.status in _LIVE_REMOTE_STATUSES
            ):
                return candidate
        return None

    async def _list_remote_subscriptions(self) -> dict[str, HelixEventSubSubscription] | None:
        """Remote subscriptions by id, or None if they could not be listed."""
        try:
            listed = await self._api_client.eventsub.list_subscriptions()
        except (HelixApiError, NetworkError) as e:
            log_error("Could not list remote subscriptions", e, level=logging.WARNING)
            return None
        return {sub.id: sub for sub in listed}

    async def _load_record(self, key: str) -> SubscriptionRecord | None:
        try:
            return await self._store.get(key)
        except StoreError as e:
            log_error(f"Could not read stored state of {key}", e, level=logging.WARNING)
            return None

    async def _persist(self, record: SubscriptionRecord) -> None:
        try:
            await self._store.save(record)
        except StoreError as e:
            log_error(f"Could not persist subscription {record.key}", e, level=logging.WARNING)

    async def _forget(self, key: str) -> None:
        try:
            await self._store.remove(key)
        except StoreError as e:
            log_error(f"Could not remove stored subscription {key}", e, level=logging.WARNING)

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    async def _build_callback_url(self, key: str) -> str:
        host = await self._adapter.get_host_name()
        port = await self._adapter.get_external_port()
        port_part = "" if port == 443 else f":{port}"
        prefix = self._adapter.path_prefix or ""
        return f"https://{host}{port_part}{prefix}/event/{key}"

    async def url_for(self, key: str) -> str:
        """Public callback URL of the subscription with the given key."""
        return await self._build_callback_url(key)

    async def _build_transport(self, key: str) -> dict[str, str]:
        return {
            "method": "webhook",
            "callback": await self._build_callback_url(key),
            "secret": self._config.secret,
        }

    async def _is_host_denied(self, host_header: str | None) -> bool:
        """Whether a request's Host header fails the strict host check.

        The port part of the header is ignored; comparison is case-insensitive.
        """
        if not self._config.strict_host_check:
            return False
        if not host_header:
            return True
        host = host_header.strip().lower()
        if host.startswith("["):
            host = host[: host.find("]") + 1]
        elif host.count(":") == 1:
            host = host.split(":", 1)[0]
        expected = (await self._adapter.get_host_name()).strip().lower()
        return host != expected

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    async def _resume_existing_subscriptions(self) -> None:
        """Bring every tracked subscription online after the listener started.

        Live remote subscriptions recorded by a previous run are adopted, all
        others are registered. Remote subscriptions pointing at one of our
        callbacks under an id we do not track are deleted. A failure affects
        only its own subscription.
        """
        pending = [
            sub
            for sub in self._subscriptions.values()
            if sub.status is SubscriptionStatus.PENDING and sub.remote_id is None
        ]
        if not pending:
            return
        try:
            records = {record.key: record for record in await self._store.load()}
        except StoreError as e:
            log_error("Could not load stored subscriptions", e, level=logging.WARNING)
            records = {}
        remote = await self._list_remote_subscriptions()

        for subscription in pending:
            key = subscription.key
            async with self._key_lock(key):
                if self._subscriptions.get(key) is not subscription:
                    continue
                try:
                    await self._activate(subscription, record=records.get(key), remote=remote or {})
                except Exception as e:
                    log_error(f"Could not resume subscription {key}", e, context={"key": key})
                    del self._subscriptions[key]

        if remote:
            await self._drop_duplicate_remote_subscriptions(remote)
        logger.info(f"♻️ Resumed {len(self._subscriptions)} subscription(s)")

    async def _drop_duplicate_remote_subscriptions(
        self, remote: Mapping[str, HelixEventSubSubscription]
    ) -> None:
        tracked_ids = {sub.remote_id for sub in self._subscriptions.values() if sub.remote_id}
        callbacks = {
            await self._build_callback_url(key): key for key in self._subscriptions
        }
        for candidate in remote.values():
            if candidate.id in tracked_ids or candidate.callback not in callbacks:
                continue
            try:
                await self._api_client.eventsub.delete_subscription(candidate.id)
                logger.info(
                    f"🧹 Deleted stale remote subscription {candidate.id} of {callbacks[candidate.callback]}"
                )
            except (HelixApiError, NetworkError) as e:
                log_error(
                    f"Could not delete stale remote subscription {candidate.id}",
                    e,
                    level=logging.WARNING,
                )

    async def _suspend_all(self) -> None:
        """Suspend every tracked subscription and clear the map."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        if subscriptions:
            await asyncio.gather(*(sub.suspend() for sub in subscriptions))
            logger.info(f"⏸️ Suspended {len(subscriptions)} subscription(s)")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        key: str,
        headers: Mapping[str, str],
        body: bytes,
        host: str | None = None,
    ) -> DispatchResult:
        """Process one inbound callback.

        Args:
            key: Subscription key from the request path.
            headers: Request headers; looked up case-insensitively.
            body: Raw request body, exactly as received.
            host: Host header of the request.

        Returns:
            DispatchResult: Status and body to answer with.
        """
        if await self._is_host_denied(host):
            logger.debug(f"Rejected callback for {key} with foreign host {host!r}")
            return _NOT_FOUND

        subscription = self._subscriptions.get(key)
        if subscription is None:
            logger.warning(f"⚠️ Callback for unknown subscription {key}")
            return _NOT_FOUND

        lowered = {name.lower(): value for name, value in headers.items()}
        message_id = lowered.get(HEADER_MESSAGE_ID.lower())
        timestamp = lowered.get(HEADER_MESSAGE_TIMESTAMP.lower())
        signature = lowered.get(HEADER_MESSAGE_SIGNATURE.lower())
        message_type = lowered.get(HEADER_MESSAGE_TYPE.lower())

        if not message_id or not timestamp or not verify_signature(
            self._config.secret, message_id, timestamp, body, signature
        ):
            log_structured_error(
                "signature",
                f"Invalid signature for callback of {key}",
                context={"message_id": message_id},
                level=logging.WARNING,
            )
            return _FORBIDDEN
        if not is_timestamp_fresh(timestamp, self._config.max_message_age):
            log_structured_error(
                "signature",
                f"Stale or malformed timestamp {timestamp!r} for callback of {key}",
                context={"message_id": message_id},
                level=logging.WARNING,
            )
            return _FORBIDDEN

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"⚠️ Undecodable callback body for {key}: {e}")
            return _BAD_REQUEST
        if not isinstance(payload, dict):
            logger.warning(f"⚠️ Callback body for {key} is not an object")
            return _BAD_REQUEST

        if message_type == MESSAGE_TYPE_VERIFICATION:
            return self._handle_verification(subscription, payload)
        if message_type not in (MESSAGE_TYPE_NOTIFICATION, MESSAGE_TYPE_REVOCATION):
            logger.warning(f"⚠️ Unknown message type {message_type!r} for {key}")
            return _BAD_REQUEST

        if self._recent_messages.check_and_add(message_id):
            logger.debug(f"Duplicate message {message_id} for {key} ignored")
            return _ACCEPTED
        if message_type == MESSAGE_TYPE_NOTIFICATION:
            return self._handle_notification(subscription, payload)
        await self._handle_revocation(subscription, payload)
        return _ACCEPTED

    def _handle_verification(
        self, subscription: EventSubSubscription, payload: dict[str, Any]
    ) -> DispatchResult:
        try:
            challenge = subscription.handle_verification_challenge(payload)
        except VerificationError as e:
            log_error("Verification rejected", e, level=logging.WARNING)
            return _NOT_FOUND
        except MessageProcessingError as e:
            log_error("Malformed verification", e, level=logging.WARNING)
            return _BAD_REQUEST
        return DispatchResult(200, challenge)

    def _handle_notification(
        self, subscription: EventSubSubscription, payload: dict[str, Any]
    ) -> DispatchResult:
        try:
            subscription.handle_notification(payload)
        except SubscriptionError as e:
            logger.warning(f"⚠️ Dropping notification: {e}")
        except MessageProcessingError as e:
            log_error("Dropping malformed notification", e, context={"key": subscription.key})
        return _ACCEPTED

    async def _handle_revocation(
        self, subscription: EventSubSubscription, payload: dict[str, Any]
    ) -> None:
        remote = payload.get("subscription")
        reason = remote.get("status") if isinstance(remote, Mapping) else None
        key = subscription.key
        async with self._key_lock(key):
            subscription._mark_revoked()
            if self._subscriptions.get(key) is subscription:
                del self._subscriptions[key]
            await self._forget(key)
        logger.warning(f"🚫 Subscription {key} revoked by Twitch ({reason or 'no reason given'})")

    # ------------------------------------------------------------------
    # Handler execution
    # ------------------------------------------------------------------

    def _schedule_handler(self, subscription: EventSubSubscription, event: EventSubEvent) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run_handler(subscription, event), name=f"eventsub-handler-{subscription.key}"
        )
        self._track_task(task)

    def _track_task(self, task: asyncio.Future[Any]) -> None:
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _run_handler(self, subscription: EventSubSubscription, event: EventSubEvent) -> None:
        timeout = self._config.handler_timeout
        try:
            finished = await subscription._invoke(event, timeout)
        except Exception as e:
            log_error(
                f"Handler of {subscription.key} raised",
                e,
                context={"key": subscription.key, "event_type": subscription.kind.type},
            )
            return
        if not finished:
            log_structured_error(
                "handler",
                f"Handler of {subscription.key} still running after {timeout}s, no longer awaited",
                context={"key": subscription.key},
            )

    async def wait_for_pending_handlers(self) -> None:
        """Wait until every scheduled handler invocation has finished."""
        while self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)
