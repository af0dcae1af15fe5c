"""Live fan-out targets for fulfillment events.

Everything here is best effort. The event log is the source of truth, a
subscriber that misses a message catches up through replay.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Iterable, Protocol

from app.events.types import EventEnvelope

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(self, event: EventEnvelope) -> None: ...


class NullPublisher:
    """Default publisher: drops everything."""

    def publish(self, event: EventEnvelope) -> None:
        return None


class RedisPublisher:
    """Publish envelopes as JSON on a redis pub/sub channel."""

    def __init__(self, client, channel: str = "fulfillment"):
        self.client = client
        self.channel = channel

    def publish(self, event: EventEnvelope) -> None:
        self.client.publish(self.channel, event.model_dump_json())


class FanoutPublisher:
    """Deliver to several publishers; one failing target never blocks the rest."""

    def __init__(self, targets: Iterable[EventPublisher]):
        self.targets = list(targets)

    def publish(self, event: EventEnvelope) -> None:
        for target in self.targets:
            try:
                target.publish(event)
            except Exception:
                logger.exception("Fan-out to %s failed for event %s (%s)", type(target).__name__, event.id, event.type)


class BrokerSubscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, order_id: str | None, maxsize: int):
        self.loop = loop
        self.order_id = order_id
        self.queue: asyncio.Queue[EventEnvelope] = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: EventEnvelope) -> bool:
        return self.order_id is None or event.order_id == self.order_id

    def offer(self, event: EventEnvelope) -> None:
        # runs on the subscriber's loop
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping event %s for slow subscriber (order=%s)", event.id, self.order_id)


class LocalBroker:
    """In-process fan-out feeding the SSE stream.

    publish() is called from worker threads (sync request handlers); each
    subscriber owns an asyncio queue on the loop that created it.
    """

    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self._lock = threading.Lock()
        self._subs: list[BrokerSubscription] = []

    def subscribe(self, order_id: str | None = None) -> BrokerSubscription:
        sub = BrokerSubscription(asyncio.get_running_loop(), order_id, self.maxsize)
        with self._lock:
            self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: BrokerSubscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, event: EventEnvelope) -> None:
        with self._lock:
            subs = [s for s in self._subs if s.matches(event)]
        for sub in subs:
            if sub.loop.is_closed():
                self.unsubscribe(sub)
                continue
            sub.loop.call_soon_threadsafe(sub.offer, event)
