"""
Notifier
========
Observer registration list cho các notifications của autoscaler.

Events: 'started', 'stopped', 'scaled', 'scaling-failed', 'metrics-added',
'manual-scaling-completed', 'manual-scaling-failed'.

Observers là fire-and-forget: exception trong observer được log lại và
không ảnh hưởng tới control loop.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

LOGGER = logging.getLogger(__name__)

Observer = Callable[[str, Dict[str, Any]], None]


class Notifier:
    """Danh sách observers, mỗi observer nhận (event_name, payload)."""

    def __init__(self):
        self._observers: List[Observer] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def notify(self, event_name: str, **payload: Any) -> None:
        with self._lock:
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(event_name, payload)
            except Exception:
                LOGGER.exception("Observer %r failed handling '%s'", observer, event_name)
