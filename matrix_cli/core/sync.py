"""
Matrix Sync Loop

Keeps pulling sync batches from the homeserver for the whole run and hands
timeline events to registered subscriptions. The loop is the only owner of the
resumption token.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

import aiohttp
from nio import AsyncClient, RoomMessageText, SyncResponse

from ..exceptions import InvalidSession, RemoteError

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Any], Union[None, Awaitable[None]]]

# Error codes meaning the access token itself is no longer usable
AUTH_ERROR_CODES = frozenset({"M_UNKNOWN_TOKEN", "M_MISSING_TOKEN"})


def is_auth_failure(response: Any) -> bool:
    """Whether an error response says the credential must be renewed."""
    return (
        getattr(response, "status_code", None) in AUTH_ERROR_CODES
        or bool(getattr(response, "soft_logout", False))
    )


@dataclass(eq=False)
class Subscription:
    """A registered event callback. Call cancel() to unregister it."""

    callback: EventCallback
    room_id: Optional[str] = None
    event_types: Tuple[type, ...] = (RoomMessageText,)
    _loop: Optional["SyncLoop"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._loop is not None

    def matches(self, room_id: str, event: Any) -> bool:
        if self.room_id is not None and room_id != self.room_id:
            return False
        return isinstance(event, self.event_types)

    def cancel(self) -> None:
        if self._loop is not None:
            self._loop._unsubscribe(self)
            self._loop = None


class SyncLoop:
    """Continuous sync against one client, with log-and-retry on transient failures."""

    def __init__(
        self,
        client: AsyncClient,
        since: Optional[str] = None,
        timeout_ms: int = 30000,
        retry_delay: float = 1.0,
        max_retry_delay: float = 60.0,
    ):
        self.client = client
        self.timeout_ms = timeout_ms
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._token = since
        self._subscriptions: List[Subscription] = []
        self._failures = 0

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def subscribe(
        self,
        callback: EventCallback,
        room_id: Optional[str] = None,
        event_types: Tuple[type, ...] = (RoomMessageText,),
    ) -> Subscription:
        """Register a callback for timeline events, optionally limited to one room."""
        subscription = Subscription(callback, room_id, tuple(event_types), self)
        self._subscriptions.append(subscription)
        logger.debug(f"SyncLoop: Subscribed to {room_id or 'all rooms'} ({len(self._subscriptions)} active)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"SyncLoop: Unsubscribed from {subscription.room_id or 'all rooms'}")

    async def fetch(self) -> SyncResponse:
        """
        Fetch one sync batch without applying it.

        Raises:
            InvalidSession: if the homeserver no longer accepts the access token
            RemoteError: for any other failed fetch
        """
        try:
            response = await self.client.sync(timeout=self.timeout_ms, since=self._token)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteError("sync", str(e) or type(e).__name__) from e

        if not isinstance(response, SyncResponse):
            message = getattr(response, "message", str(response))
            status_code = getattr(response, "status_code", None)
            if is_auth_failure(response):
                raise InvalidSession(message, status_code)
            raise RemoteError("sync", message, status_code)
        return response

    async def apply(self, response: SyncResponse) -> None:
        """Deliver a fetched batch to subscribers, then advance the token past it."""
        await self._deliver(response)
        self._token = response.next_batch

    async def sync_once(self) -> SyncResponse:
        """Fetch and apply one sync batch. Subscriber errors propagate unchanged."""
        response = await self.fetch()
        await self.apply(response)
        return response

    async def _deliver(self, response: SyncResponse) -> None:
        """Deliver the batch's timeline events in the order the server sent them."""
        if not self._subscriptions:
            return

        for room_id, info in response.rooms.join.items():
            for event in info.timeline.events:
                # copy: a callback may cancel its own subscription
                for subscription in list(self._subscriptions):
                    if subscription.active and subscription.matches(room_id, event):
                        result = subscription.callback(room_id, event)
                        if inspect.isawaitable(result):
                            await result

    def _next_delay(self) -> float:
        return min(self.max_retry_delay, self.retry_delay * (2 ** (self._failures - 1)))

    async def run(self) -> None:
        """
        Sync until cancelled.

        Only failed fetches are retried. An invalid session, or any error raised
        by a subscriber, ends the loop.
        """
        logger.info(f"SyncLoop: Starting from token {self._token}")
        while True:
            try:
                response = await self.fetch()
            except RemoteError as e:
                self._failures += 1
                delay = self._next_delay()
                logger.warning(
                    f"SyncLoop: Sync attempt failed ({self._failures} in a row): {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
                continue

            if self._failures:
                logger.info(f"SyncLoop: Sync recovered after {self._failures} failures")
            self._failures = 0
            await self.apply(response)
