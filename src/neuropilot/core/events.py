# src/neuropilot/core/events.py

from __future__ import annotations

import logging
import threading
from collections import defaultdict

from .ports import EventCallback

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process data-changed signal.

    Delivery is synchronous and fire-and-forget: a subscriber that raises is
    logged and skipped, the writer that emitted never sees the error.
    Payloads are just the topic name; subscribers re-read what they need.
    """

    def __init__(self) -> None:
        self._subs: dict[str, list[EventCallback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: EventCallback) -> None:
        with self._lock:
            self._subs[topic].append(callback)

    def unsubscribe(self, topic: str, callback: EventCallback) -> None:
        with self._lock:
            try:
                self._subs[topic].remove(callback)
            except ValueError:
                pass

    def emit(self, topic: str) -> None:
        with self._lock:
            callbacks = list(self._subs.get(topic, ()))
        logger.debug("emit topic=%s subscribers=%d", topic, len(callbacks))
        for cb in callbacks:
            try:
                cb(topic)
            except Exception:
                logger.exception("Event subscriber failed topic=%s", topic)
