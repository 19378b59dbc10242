"""Fan-out of progress events to connected observers."""

import asyncio
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

from app.jobs.models import ProgressEvent

logger = logging.getLogger(__name__)


class ObserverClosed(Exception):
    """Raised when delivering to an observer that can no longer accept events."""


class Observer:
    """A subscription handle with its own bounded outbox.

    ``publish`` never awaits a slow connection: it enqueues, and the
    connection's writer drains the outbox in order with ``get``.
    """

    def __init__(self, observer_id: Optional[str] = None, max_pending: int = 1000):
        self.id = observer_id or uuid.uuid4().hex
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise ObserverClosed(self.id)
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            raise ObserverClosed(f"{self.id}: outbox full")

    async def get(self) -> Optional[Dict[str, Any]]:
        """Next pending message, or None once the observer is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        message = await self._queue.get()
        return message

    def pending(self) -> List[Dict[str, Any]]:
        """Drain and return everything queued so far without waiting."""
        drained = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return [m for m in drained if m is not None]
            drained.append(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # Wake a writer blocked in get()
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class EventBroadcaster:
    """Holds the set of live observers and publishes events to all of them.

    It keeps no history: an observer only sees events published after it
    subscribed. Events for one job reach every observer in publish order.
    """

    def __init__(self, max_pending: int = 1000):
        self._observers: Dict[str, Observer] = {}
        self._lock = threading.Lock()
        self._max_pending = max_pending

    def subscribe(self, observer_id: Optional[str] = None) -> Observer:
        observer = Observer(observer_id, max_pending=self._max_pending)
        with self._lock:
            self._observers[observer.id] = observer
        logger.info("Observer %s connected (%d total)", observer.id, len(self))
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            removed = self._observers.pop(observer.id, None)
        observer.close()
        if removed is not None:
            logger.info("Observer %s disconnected (%d total)", observer.id, len(self))

    def publish(self, event: ProgressEvent) -> int:
        """Deliver ``event`` to every observer. Returns how many accepted it.

        An observer that fails to accept the event is dropped; the others
        still receive it.
        """
        message = event.to_message()
        with self._lock:
            targets = list(self._observers.values())
        delivered = 0
        for observer in targets:
            try:
                observer.deliver(message)
            except ObserverClosed as e:
                logger.info("Dropping observer after failed send: %s", e)
                self.unsubscribe(observer)
                continue
            delivered += 1
        return delivered

    def observers(self) -> List[Observer]:
        with self._lock:
            return list(self._observers.values())

    def close_all(self) -> None:
        for observer in self.observers():
            self.unsubscribe(observer)

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)
