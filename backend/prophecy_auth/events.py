"""In-process broadcast of user lifecycle events.

Subscribers are plain callables receiving ``{"type": ..., "data": ..., "ts": ...}``.
Publishing is fire-and-forget: a failing subscriber is logged and skipped.
"""
import logging
import threading
import time
from typing import Callable, List

logger = logging.getLogger(__name__)

USER_CREATED = "user:created"
USER_UPDATED = "user:updated"
USER_DELETED = "user:deleted"

Subscriber = Callable[[dict], None]


class EventBroadcaster:
    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def broadcast(self, event_type: str, data: dict) -> None:
        event = {"type": event_type, "data": data, "ts": time.time()}
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.warning("Event subscriber failed for %s", event_type, exc_info=True)


broadcaster = EventBroadcaster()
