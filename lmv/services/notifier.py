"""Fan-out of live change notifications to connected event-stream clients.

Each subscriber owns a bounded queue. Publishing never blocks: a queue
that is full or already closed is treated as a disconnected client and
removed from the registry on the spot. Late subscribers get no replay,
only the synthetic initial events handed to ``stream``.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Optional

from lmv import config
from lmv.models import NotificationEvent
from lmv.observability import record_notification

logger = logging.getLogger("lmv.notifier")

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse(event: NotificationEvent) -> str:
    return f"event: {event.type}\ndata: {json.dumps(event.payload())}\n\n"


@dataclass(eq=False)
class Subscription:
    id: str
    queue: asyncio.Queue = field(repr=False)
    closed: bool = False


class EventBroadcaster:
    """Registry of subscriber queues with at-most-once delivery."""

    def __init__(
        self,
        queue_size: int = config.SUBSCRIBER_QUEUE_SIZE,
        keepalive_seconds: float = config.KEEPALIVE_SECONDS,
    ):
        self.queue_size = max(1, int(queue_size))
        self.keepalive_seconds = keepalive_seconds
        self._subscribers: dict[str, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(id=f"client-{next(self._ids)}", queue=asyncio.Queue(maxsize=self.queue_size))
        self._subscribers[subscription.id] = subscription
        logger.debug(f"Subscriber {subscription.id} connected ({self.subscriber_count} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.debug(f"Subscriber {subscription.id} disconnected ({self.subscriber_count} total)")

    def publish(self, event: NotificationEvent) -> int:
        """Enqueue ``event`` for every live subscriber; return the delivery count."""
        delivered = 0
        for subscription in list(self._subscribers.values()):
            if subscription.closed:
                self.unsubscribe(subscription)
                continue
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Subscriber {subscription.id} is not draining events, dropping it")
                self.unsubscribe(subscription)
        record_notification(event.type, delivered)
        logger.debug(f"Published {event.type} to {delivered} subscriber(s)")
        return delivered

    def close(self) -> None:
        """Wake every open stream so it can finish; used on shutdown."""
        for subscription in list(self._subscribers.values()):
            try:
                subscription.queue.put_nowait(None)
            except asyncio.QueueFull:
                pass
            self.unsubscribe(subscription)

    async def stream(
        self,
        subscription: Subscription,
        initial_events: Iterable[NotificationEvent] = (),
        keepalive_seconds: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for ``subscription`` until it closes or is cancelled."""
        interval = keepalive_seconds if keepalive_seconds is not None else self.keepalive_seconds
        try:
            for event in initial_events:
                yield format_sse(event)
            while not subscription.closed:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=interval)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if event is None:
                    break
                yield format_sse(event)
        finally:
            self.unsubscribe(subscription)
