"""In-process change notifications for UI / feed consumers.

Ledgers publish committed snapshots; subscribers get them synchronously on
the publishing thread.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

ASSETS = "assets"
ACTIVITY = "activity"
BETS = "bets"


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, topic: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register `callback` for `topic`. Returns a function that unsubscribes."""
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers[topic])
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                # One broken consumer must not fail a committed trade.
                logger.exception(f"Subscriber {callback!r} failed on topic {topic}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers[topic])
