"""
Purpose: Lifecycle notifications for presentation layers (observer interface).
What it does:
- DispatchEvent names the notifications the core emits
- EventBus keeps subscribers per event and delivers payload dicts synchronously

Rule: A broken subscriber is logged and skipped; it never aborts the operation that emitted.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Union

logger = logging.getLogger(__name__)

Subscriber = Callable[[Mapping[str, Any]], None]


class DispatchEvent(str, Enum):
    PACK_STARTED = "pack-started"
    PACK_STATUS_UPDATED = "pack-status-updated"
    PACK_COMPLETED = "pack-completed"
    BATCH_DETECTED = "batch-detected"
    METRICS_UPDATED = "metrics-updated"


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[DispatchEvent, List[Subscriber]] = {}

    def subscribe(self, event: Union[DispatchEvent, str], callback: Subscriber) -> Callable[[], None]:
        """
        Register callback for event. Returns a function that removes it again.
        """
        key = DispatchEvent(event)
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: Union[DispatchEvent, str], payload: Mapping[str, Any]) -> int:
        """
        Deliver payload to every subscriber of event. Returns how many succeeded.
        """
        key = DispatchEvent(event)
        delivered = 0
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(payload)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber for {key.value} failed")
        return delivered

    def subscriber_count(self, event: Union[DispatchEvent, str]) -> int:
        return len(self._subscribers.get(DispatchEvent(event), []))
