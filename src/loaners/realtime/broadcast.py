"""Real-time reservation change broadcast.

Every committed reservation mutation is pushed to all connected viewers as

    {"event": "reservation_update", "action": "create" | "update" | "delete",
     "data": <joined reservation view>}

Delivery is fire-and-forget: no acknowledgement, no replay for clients that
connect later, no per-client filtering. A viewer whose queue is full misses
the message; viewers should treat every message as "something changed".
"""

from __future__ import annotations

import asyncio
import os
import threading
from typing import Protocol

from loaners.observability.logging import get_logger

logger = get_logger(__name__)

EVENT_NAME = "reservation_update"
ACTIONS = ("create", "update", "delete")

DEFAULT_QUEUE_SIZE = 100


class Notifier(Protocol):
    """Publish interface the reservation lifecycle reports changes to."""

    def notify(self, action: str, reservation: dict) -> None:
        """Publish a lifecycle event for one reservation view."""
        ...


class Subscription:
    """One connected viewer: a bounded queue living on the viewer's event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, max_size: int) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max_size)
        self.dropped = 0

    def _offer(self, message: dict) -> None:
        # Runs on the subscriber's loop.
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "subscriber queue full, dropping message",
                extra={"extra_fields": {"dropped": self.dropped}},
            )

    def deliver(self, message: dict) -> bool:
        """Hand a message to the subscriber from any thread.

        Returns:
            False if the subscriber's loop is closed.
        """
        try:
            self._loop.call_soon_threadsafe(self._offer, message)
        except RuntimeError:
            return False
        return True

    async def get(self) -> dict:
        """Wait for the next message."""
        return await self._queue.get()


def _queue_size_from_env() -> int:
    raw = os.environ.get("BROADCAST_QUEUE_SIZE", "")
    return int(raw) if raw.isdigit() and int(raw) > 0 else DEFAULT_QUEUE_SIZE


class BroadcastHub:
    """Fan-out of reservation events to WebSocket subscribers.

    notify() is safe to call from worker threads (sync FastAPI routes run on
    the threadpool); subscribe() must be called from the event loop that will
    consume the subscription.
    """

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or _queue_size_from_env()
        self._lock = threading.Lock()
        self._subscriptions: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._subscriptions.add(subscription)
            count = len(self._subscriptions)
        logger.info(
            "reservation subscriber connected",
            extra={"extra_fields": {"subscribers": count}},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)
            count = len(self._subscriptions)
        logger.info(
            "reservation subscriber disconnected",
            extra={"extra_fields": {"subscribers": count}},
        )

    def notify(self, action: str, reservation: dict) -> None:
        """Broadcast one lifecycle event to every current subscriber.

        Raises:
            ValueError: If action is not create, update or delete.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown reservation action: {action}")

        message = {"event": EVENT_NAME, "action": action, "data": reservation}

        with self._lock:
            targets = list(self._subscriptions)

        for subscription in targets:
            if not subscription.deliver(message):
                self.unsubscribe(subscription)
