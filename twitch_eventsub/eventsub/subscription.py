"""A single tracked EventSub subscription.

A subscription is identified by a deterministic key built from its event
kind and scoping parameters. It walks through the verification lifecycle::

    PENDING --challenge--> VERIFIED --suspend--> SUSPENDED
       |                      |
       +--rejected--> FAILED  +--revocation--> REVOKED

The owning listener is referenced weakly; the listener's map is the
authoritative owner of subscriptions.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import weakref
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..constants import REMOTE_STATUS_ENABLED
from ..errors.eventsub import (
    MessageProcessingError,
    SubscriptionError,
    VerificationError,
)
from ..errors.handling import log_error
from ..events import EventSubEvent
from .kinds import EventKind
from .store import SubscriptionRecord

if TYPE_CHECKING:
    from ..api.eventsub import HelixEventSubSubscription
    from .listener import EventSubListener

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventSubEvent], Awaitable[Any] | Any]


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    REVOKED = "revoked"
    SUSPENDED = "suspended"


class EventSubSubscription:
    """One registered interest in an event kind plus scoping parameters.

    Attributes:
        key (str): Local identity, e.g. ``channel.ban.123``; also the callback path id.
        kind (EventKind): The event kind this subscription is for.
        params (dict[str, str]): Normalised scoping parameters.
        remote_id (str | None): Id assigned by Twitch, None until known.
        status (SubscriptionStatus): Current lifecycle state.
    """

    def __init__(
        self,
        kind: EventKind,
        params: Mapping[str, Any],
        handler: EventHandler,
        listener: EventSubListener,
    ) -> None:
        if not callable(handler):
            raise SubscriptionError("handler must be callable", operation_type="subscribe")
        self._kind = kind
        self._params = kind.validate_params(params)
        self._key = kind.key(self._params)
        self._handler = handler
        self._listener_ref = weakref.ref(listener)
        self._remote_id: str | None = None
        self._status = SubscriptionStatus.PENDING
        # Serialises handler invocations so they run in arrival order
        self._handler_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"EventSubSubscription(key={self._key!r}, remote_id={self._remote_id!r}, "
            f"status={self._status.value!r})"
        )

    @property
    def key(self) -> str:
        return self._key

    @property
    def id(self) -> str:
        """Alias of :attr:`key`."""
        return self._key

    @property
    def kind(self) -> EventKind:
        return self._kind

    @property
    def params(self) -> dict[str, str]:
        return dict(self._params)

    @property
    def remote_id(self) -> str | None:
        return self._remote_id

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def verified(self) -> bool:
        return self._status is SubscriptionStatus.VERIFIED

    @property
    def is_active(self) -> bool:
        """Pending or verified, i.e. still expected to receive callbacks."""
        return self._status in (SubscriptionStatus.PENDING, SubscriptionStatus.VERIFIED)

    @property
    def _listener(self) -> EventSubListener:
        listener = self._listener_ref()
        if listener is None:
            raise SubscriptionError(
                f"Listener of subscription {self._key} no longer exists",
                subscription_key=self._key,
            )
        return listener

    async def register(self) -> HelixEventSubSubscription:
        """Register this subscription with Twitch.

        Returns:
            HelixEventSubSubscription: The remote subscription.

        Raises:
            HelixApiError: Unchanged, if Twitch rejects the registration.
            NetworkError: If Twitch could not be reached.
        """
        try:
            remote = await self._listener._subscribe(self)
        except Exception:
            self._status = SubscriptionStatus.FAILED
            raise

        if self._remote_id is None:
            self._remote_id = remote.id
        elif self._remote_id != remote.id:
            logger.warning(
                f"⚠️ Subscription {self._key} verified as {self._remote_id} but registered as {remote.id}"
            )
        if remote.status == REMOTE_STATUS_ENABLED and self._status is SubscriptionStatus.PENDING:
            self._status = SubscriptionStatus.VERIFIED
        logger.debug(f"📡 Subscription {self._key} registered as {remote.id} ({self._status.value})")
        return remote

    def _adopt(self, remote_id: str, *, verified: bool) -> None:
        """Take over an existing remote subscription without registering again."""
        self._remote_id = remote_id
        self._status = SubscriptionStatus.VERIFIED if verified else SubscriptionStatus.PENDING
        logger.info(f"♻️ Resumed subscription {self._key} ({remote_id}, {self._status.value})")

    def handle_verification_challenge(self, payload: Mapping[str, Any]) -> str:
        """Answer a verification challenge for this subscription.

        Args:
            payload: Parsed callback body holding ``challenge`` and ``subscription``.

        Returns:
            str: The challenge, to be echoed as the response body.

        Raises:
            VerificationError: If not pending, or the payload names a foreign remote id.
            MessageProcessingError: If the payload carries no challenge.
        """
        if self._status is not SubscriptionStatus.PENDING:
            raise VerificationError(
                f"Subscription {self._key} is not awaiting verification ({self._status.value})",
                subscription_key=self._key,
                remote_id=self._remote_id,
                operation_type="verify",
            )
        challenge = payload.get("challenge")
        if not isinstance(challenge, str) or not challenge:
            raise MessageProcessingError(
                f"Verification payload for {self._key} carries no challenge",
                subscription_key=self._key,
                operation_type="verify",
            )
        remote = payload.get("subscription")
        remote_id = remote.get("id") if isinstance(remote, Mapping) else None
        if isinstance(remote_id, str) and remote_id:
            if self._remote_id is None:
                # Challenge raced ahead of the registration response
                self._remote_id = remote_id
            elif remote_id != self._remote_id:
                raise VerificationError(
                    f"Verification for {self._key} names {remote_id}, expected {self._remote_id}",
                    subscription_key=self._key,
                    remote_id=remote_id,
                    operation_type="verify",
                )
        self._status = SubscriptionStatus.VERIFIED
        logger.info(f"✅ Subscription {self._key} verified")
        return challenge

    def transform_data(self, raw: Mapping[str, Any]) -> EventSubEvent:
        """Turn the raw ``event`` object into this kind's typed event."""
        return self._kind.transform(raw, self._listener.api_client)

    def handle_notification(self, payload: Mapping[str, Any]) -> EventSubEvent:
        """Transform a notification and hand it to the listener for delivery.

        Raises:
            SubscriptionError: If the subscription is not verified.
            MessageProcessingError: If the payload has no usable ``event`` object.
        """
        if self._status is not SubscriptionStatus.VERIFIED:
            raise SubscriptionError(
                f"Notification for unverified subscription {self._key} ({self._status.value})",
                subscription_key=self._key,
                remote_id=self._remote_id,
                operation_type="notify",
            )
        raw = payload.get("event")
        if not isinstance(raw, Mapping):
            raise MessageProcessingError(
                f"Notification for {self._key} has no event object",
                subscription_key=self._key,
                operation_type="parse_event",
            )
        try:
            event = self.transform_data(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise MessageProcessingError(
                f"Could not transform event for {self._key}: {str(e)}",
                subscription_key=self._key,
                operation_type="parse_event",
            ) from e
        self._listener._schedule_handler(self, event)
        return event

    async def _invoke(self, event: EventSubEvent, timeout: float) -> bool:
        """Run the user handler and wait for it up to ``timeout``.

        Coroutine functions run on the loop; plain callables run in the default
        executor so a blocking handler never stalls other callbacks. A handler
        still running after the timeout is left to finish on its own.

        Returns:
            bool: False if the timeout elapsed, True otherwise.

        Raises:
            Exception: Whatever the handler raised.
        """
        async with self._handler_lock:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            if inspect.iscoroutinefunction(self._handler):
                inner = asyncio.ensure_future(self._handler(event))
            else:
                inner = loop.run_in_executor(None, functools.partial(self._handler, event))
            done, _ = await asyncio.wait({inner}, timeout=timeout)
            if done:
                result = inner.result()
                if inspect.isawaitable(result):
                    # Plain callable handing back an awaitable, e.g. a partial of a coroutine function
                    inner = asyncio.ensure_future(result)
                    done, _ = await asyncio.wait({inner}, timeout=max(deadline - loop.time(), 0))
                    if done:
                        inner.result()
            if not done:
                self._listener._track_task(inner)
                return False
            return True

    def _mark_revoked(self) -> None:
        self._status = SubscriptionStatus.REVOKED

    async def suspend(self) -> None:
        """Unsubscribe remotely (best effort) and stop accepting notifications."""
        if self._status is SubscriptionStatus.SUSPENDED:
            return
        try:
            await self._listener._unsubscribe(self)
        except Exception as e:
            log_error(
                f"Could not unsubscribe {self._key}",
                e,
                context={"remote_id": self._remote_id},
                level=logging.WARNING,
            )
        finally:
            self._status = SubscriptionStatus.SUSPENDED
        logger.debug(f"⏸️ Subscription {self._key} suspended")

    def to_record(self) -> SubscriptionRecord:
        return SubscriptionRecord(
            key=self._key,
            remote_id=self._remote_id,
            event_type=self._kind.type,
            kind=self._kind.name,
            params=dict(self._params),
        )
