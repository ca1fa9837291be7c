"""Fan-out of status deltas to live stream subscribers."""

import asyncio
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from session_sync.domain.status import StatusDelta

logger = logging.getLogger(__name__)


class SubscriberClosedError(Exception):
    """Raised when pushing to a subscriber whose transport is gone."""


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


@dataclass(eq=False)
class Subscriber:
    """A live streaming connection bound to one user."""

    user_id: str
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop
    id: str = field(default_factory=lambda: uuid4().hex)
    closed: bool = False

    def push(self, delta: StatusDelta) -> None:
        """Queue a delta for delivery, raising if the subscriber can't take it."""
        if self.closed:
            raise SubscriberClosedError(self.id)
        if _running_loop() is self.loop:
            self.queue.put_nowait(delta)
            return
        self.loop.call_soon_threadsafe(self._deliver, delta)

    def _deliver(self, delta: StatusDelta) -> None:
        try:
            self.queue.put_nowait(delta)
        except asyncio.QueueFull:
            logger.warning(
                "Subscriber queue overflow", extra={"subscriber_id": self.id}
            )
            self.closed = True

    async def next_delta(self, timeout: float) -> StatusDelta | None:
        """Wait for the next delta, returning None when the timeout elapses."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def close(self) -> None:
        self.closed = True


class ChangeBroadcaster:
    """Pushes each accepted transition to every subscriber of the user."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self, user_id: str, loop: asyncio.AbstractEventLoop | None = None
    ) -> Subscriber:
        """Register a new subscriber for the user."""
        subscriber = Subscriber(
            user_id=user_id,
            queue=asyncio.Queue(maxsize=self.queue_size),
            loop=loop or asyncio.get_running_loop(),
        )
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(subscriber)
        logger.info(
            "Subscriber registered",
            extra={"user_id": user_id, "subscriber_id": subscriber.id},
        )
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove a subscriber; removing twice is harmless."""
        subscriber.close()
        with self._lock:
            self._remove_locked(subscriber)

    @contextmanager
    def subscription(
        self, user_id: str, loop: asyncio.AbstractEventLoop | None = None
    ) -> Iterator[Subscriber]:
        """Subscribe for the duration of a block."""
        subscriber = self.subscribe(user_id, loop=loop)
        try:
            yield subscriber
        finally:
            self.unsubscribe(subscriber)

    def publish(self, delta: StatusDelta) -> int:
        """Push a delta to the user's subscribers and return the delivery count."""
        delivered = 0
        with self._lock:
            for subscriber in list(self._subscribers.get(delta.user_id, [])):
                try:
                    subscriber.push(delta)
                except (SubscriberClosedError, asyncio.QueueFull, RuntimeError):
                    logger.warning(
                        "Dropping subscriber after failed push",
                        extra={
                            "user_id": delta.user_id,
                            "subscriber_id": subscriber.id,
                        },
                    )
                    subscriber.close()
                    self._remove_locked(subscriber)
                    continue
                delivered += 1
        return delivered

    def subscriber_count(self, user_id: str | None = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._subscribers.get(user_id, []))
            return sum(len(items) for items in self._subscribers.values())

    def subscriber_counts(self) -> dict[str, int]:
        """Return live subscriber counts keyed by user id."""
        with self._lock:
            return {user_id: len(items) for user_id, items in self._subscribers.items()}

    def close_all(self) -> None:
        """Close and drop every subscriber, used on shutdown."""
        with self._lock:
            for items in self._subscribers.values():
                for subscriber in items:
                    subscriber.close()
            self._subscribers.clear()

    def _remove_locked(self, subscriber: Subscriber) -> None:
        items = self._subscribers.get(subscriber.user_id)
        if not items:
            return
        if subscriber in items:
            items.remove(subscriber)
        if not items:
            self._subscribers.pop(subscriber.user_id, None)
