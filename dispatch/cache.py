from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from orders.models import Order

logger = logging.getLogger(__name__)

# (order_number, time bucket, scoring-input fingerprint)
CacheKey = Tuple[str, int, Tuple]


class ScoreCache:
    """
    Time-bucketed cache of DPS results, owned by a single DispatchQueue.

    Keys include the time bucket (hour by default) so entries self-invalidate as
    time passes, and a fingerprint of the scoring inputs so an edited order never
    reads a score computed from its old values. sweep() drops entries older than
    the TTL to bound memory for long sessions.
    """
    def __init__(self, ttl_sec: int = 300, bucket_sec: int = 3600):
        self.ttl_sec = ttl_sec
        self.bucket_sec = bucket_sec
        self._entries: Dict[CacheKey, Tuple[float, datetime]] = {}  # key -> (score, computed_at)
        self.hits = 0
        self.misses = 0

    def key_for(self, order: Order, now: datetime) -> CacheKey:
        bucket = int(now.timestamp() // self.bucket_sec)
        fingerprint = (
            order.order_date,
            order.expected_dispatch,
            order.delivery_by,
            order.order_total,
        )
        return (order.order_number, bucket, fingerprint)

    def get(self, order: Order, now: datetime) -> Optional[float]:
        entry = self._entries.get(self.key_for(order, now))
        if entry is None:
            self.misses += 1
            return None

        score, computed_at = entry
        if (now - computed_at).total_seconds() >= self.ttl_sec:
            self.misses += 1
            return None

        self.hits += 1
        return score

    def put(self, order: Order, now: datetime, score: float) -> None:
        self._entries[self.key_for(order, now)] = (score, now)

    def sweep(self, now: datetime) -> int:
        """
        Drop expired entries. Returns how many were removed.
        """
        expired = [
            key for key, (_, computed_at) in self._entries.items()
            if (now - computed_at).total_seconds() >= self.ttl_sec
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Score cache sweep dropped {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
