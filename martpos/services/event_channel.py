"""
Publish/subscribe channel for live monitoring.

One channel is created by the application factory and lives as long as the
server: ``start()`` opens it, ``close()`` wakes and detaches every subscriber.
Publishing never blocks; a subscriber whose queue is full misses the event.
"""
import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from flask import Flask

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """A subscriber's view of the channel, filtered by topic."""

    def __init__(self, channel: 'EventChannel', topics: Optional[Iterable[str]], maxsize: int):
        self._channel = channel
        self.topics = frozenset(topics) if topics else None
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics

    def _offer(self, item) -> None:
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            self.dropped += 1

    def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Next event as {'topic', 'data', 'timestamp'}, or None on timeout.

        Returns None immediately once the subscription is closed.
        """
        if self.closed:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class EventChannel:
    """Server-lifetime topic channel (topics: 'audit', 'error')."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers = []
        self._lock = threading.Lock()
        self._open = False

    def init_app(self, app: Flask) -> None:
        self.queue_size = app.config.get('EVENT_CHANNEL_QUEUE_SIZE', self.queue_size)
        app.extensions['event_channel'] = self
        self.start()

    @property
    def is_open(self) -> bool:
        return self._open

    def start(self) -> None:
        with self._lock:
            self._open = True
        logger.info("[EVENTS] channel opened")

    def close(self) -> None:
        """Detach all subscribers; later publishes are ignored."""
        with self._lock:
            self._open = False
            subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._offer(_CLOSED)
            sub.closed = True
        logger.info(f"[EVENTS] channel closed ({len(subscribers)} subscribers detached)")

    def subscribe(self, topics: Optional[Iterable[str]] = None) -> Subscription:
        sub = Subscription(self, topics, self.queue_size)
        with self._lock:
            if not self._open:
                sub.closed = True
                return sub
            self._subscribers.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, topic: str, data: Dict[str, Any]) -> int:
        """Deliver to matching subscribers; returns how many received it."""
        with self._lock:
            if not self._open:
                return 0
            targets = [s for s in self._subscribers if s.wants(topic)]
        event = {
            'topic': topic,
            'data': data,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        delivered = 0
        for sub in targets:
            before = sub.dropped
            sub._offer(event)
            if sub.dropped == before:
                delivered += 1
        return delivered
