"""
Purpose: Manages the prioritized dispatch queue (the "what to pick/pack next" list).
What it does:
- Owns the in-memory working set:
   - orders by order number
   - dirty set (orders whose scoring inputs changed since the last recompute)
   - score cache (time-bucketed, per queue instance)
   - last computed ranking

Provides operations:
   - load_orders(orders) / upsert_order(order)
   - mark_dirty(order_number) / mark_all_dirty()
   - recompute(now) / recompute_async(now, chunk_size)
   - top_n(n, now, exclude)

Applies the dirty-flag rule:
 - only dirty (or never scored) orders are rescored
 - a recompute with nothing dirty returns the cached ranking and does no scoring work

Rule: Queue owns derived fields and ordering, scoring owns the maths (dispatch/scoring.py).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from dispatch.cache import ScoreCache
from dispatch.policy import ScoringPolicy, default_scoring_policy
from dispatch.scoring import (
    calculate_dps,
    dispatch_countdown_ms,
    is_overdue,
    ranking_key,
    scoring_issues,
    time_to_dispatch,
    urgency_level,
    utcnow,
)
from .models import Order, UrgencyLevel

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    total_orders: int
    average_dps: float
    overdue_count: int
    urgency_distribution: Dict[str, int]
    top_dps: float
    lowest_dps: float
    dirty_count: int
    now: datetime = field(default_factory=utcnow)


@dataclass
class QueuePerformance:
    last_calculation_ms: float = 0.0
    average_calculation_ms: float = 0.0
    total_calculations: int = 0
    # how many DPS values were actually computed (cache misses on scoreable orders)
    score_computations: int = 0
    last_calculation: Optional[datetime] = None

    def record(self, elapsed_ms: float, at: datetime) -> None:
        self.last_calculation_ms = elapsed_ms
        self.total_calculations += 1
        # rolling average
        count = self.total_calculations
        self.average_calculation_ms = ((self.average_calculation_ms * (count - 1)) + elapsed_ms) / count
        self.last_calculation = at


@dataclass
class RankedOrder:
    """
    One row of top_n(): the order plus its display annotations.
    """
    order: Order
    priority_rank: int
    urgency_level: UrgencyLevel
    time_to_dispatch: str
    dispatch_countdown_ms: int

    def to_dict(self) -> Dict[str, Any]:
        row = self.order.to_dict()
        row.update(
            priority_rank=self.priority_rank,
            urgency_level=self.urgency_level.value,
            time_to_dispatch=self.time_to_dispatch,
            dispatch_countdown_ms=self.dispatch_countdown_ms,
        )
        return row


@dataclass
class DispatchQueue:
    """
    In-memory priority queue with dirty tracking:

    load -> mark dirty -> recompute (score dirty, sort all) -> top_n

    Each instance owns its own cache and state, so several queues can live side by side.
    """
    policy: ScoringPolicy = field(default_factory=default_scoring_policy)

    _orders: Dict[str, Order] = field(default_factory=dict)  # all orders by number
    _dirty: Set[str] = field(default_factory=set)            # order numbers pending rescoring
    _ranking: List[Order] = field(default_factory=list)      # last computed ranking
    _cache: Optional[ScoreCache] = None

    _is_calculating: bool = False
    _has_ranking: bool = False
    _last_sweep_at: Optional[datetime] = None
    _metrics: QueuePerformance = field(default_factory=QueuePerformance)

    def __post_init__(self) -> None:
        self.policy.validate()
        if self._cache is None:
            self._cache = ScoreCache(ttl_sec=self.policy.cache_ttl_sec, bucket_sec=self.policy.cache_bucket_sec)

    # --- Public API ---

    def load_orders(self, orders: Iterable[Order]) -> None:
        """
        Replace the working set. Every order is marked dirty.
        """
        self._orders = {}
        for order in orders:
            if order.order_number in self._orders:
                logger.warning(f"Duplicate order number {order.order_number} in load; keeping the last one")
            self._orders[order.order_number] = order
        self._dirty = set(self._orders)
        self._ranking = []
        self._has_ranking = False
        logger.info(f"Loaded {len(self._orders)} orders into dispatch queue")

    def upsert_order(self, order: Order) -> None:
        """
        Add or replace a single order and mark it dirty.
        """
        self._orders[order.order_number] = order
        self._dirty.add(order.order_number)

    def get_order(self, order_number: str) -> Optional[Order]:
        return self._orders.get(order_number)

    def orders(self) -> List[Order]:
        return list(self._orders.values())

    def mark_dirty(self, order_number: str) -> None:
        """
        Flag an order for rescoring after an edit to its scoring inputs.
        Pack status changes do not need this.
        """
        if order_number not in self._orders:
            raise KeyError(f"Order {order_number} is not in the dispatch queue")
        self._dirty.add(order_number)
        logger.debug(f"Order {order_number} marked for DPS recalculation")

    def mark_all_dirty(self) -> None:
        self._dirty = set(self._orders)
        logger.debug(f"All {len(self._dirty)} orders marked for DPS recalculation")

    def dirty_orders(self) -> Set[str]:
        return set(self._dirty)

    def ranking(self) -> List[Order]:
        return list(self._ranking)

    def recompute(self, now: Optional[datetime] = None) -> List[Order]:
        """
        Rescore dirty orders, then sort the full set.

        Idempotent: with nothing dirty the previous ranking is returned untouched.
        A call made while another recompute is running returns the previous ranking.
        """
        if self._is_calculating:
            logger.info("Queue recompute already in progress, returning previous ranking")
            return list(self._ranking)

        if not self._dirty and self._has_ranking:
            logger.debug("No dirty orders, using cached ranking")
            return list(self._ranking)

        self._is_calculating = True
        started = time.perf_counter()
        try:
            now = now or utcnow()
            self._maybe_sweep(now)
            pending = self._pending_order_numbers()
            for order_number in pending:
                self._score_order(self._orders[order_number], now)
            return self._finish(now, started, scored=len(pending))
        finally:
            self._is_calculating = False

    async def recompute_async(self, now: Optional[datetime] = None, chunk_size: int = 250) -> List[Order]:
        """
        Same contract as recompute(), but yields to the event loop between chunks.

        Each order leaves the dirty set as soon as it is scored, so an interrupted
        run can be resumed by the next recompute without redoing finished work.
        Orders marked dirty while the run is yielding stay dirty for the next recompute.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")

        if self._is_calculating:
            logger.info("Queue recompute already in progress, returning previous ranking")
            return list(self._ranking)

        if not self._dirty and self._has_ranking:
            return list(self._ranking)

        self._is_calculating = True
        started = time.perf_counter()
        try:
            now = now or utcnow()
            self._maybe_sweep(now)
            pending = self._pending_order_numbers()
            scored = 0
            for start in range(0, len(pending), chunk_size):
                for order_number in pending[start:start + chunk_size]:
                    # the working set may have changed while we were yielding
                    order = self._orders.get(order_number)
                    if order is None:
                        continue
                    self._score_order(order, now)
                    scored += 1
                await asyncio.sleep(0)
            return self._finish(now, started, scored=scored)
        finally:
            self._is_calculating = False

    def top_n(
        self,
        n: int = 5,
        now: Optional[datetime] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[RankedOrder]:
        """
        First n entries of the current ranking with display annotations.

        exclude: order numbers to hide (e.g. orders already in a pack session).
        Ranks are 1-based positions in the returned view.
        """
        if not self._has_ranking or not self._ranking:
            logger.warning("Priority queue is empty. Call recompute() first.")
            return []

        if n <= 0:
            return []

        if self._dirty:
            logger.warning(f"top_n() read with {len(self._dirty)} dirty orders; ranking may be stale until recompute()")

        now = now or utcnow()
        hidden = set(exclude or ())

        rows: List[RankedOrder] = []
        for order in self._ranking:
            if order.order_number in hidden:
                continue
            rows.append(
                RankedOrder(
                    order=order,
                    priority_rank=len(rows) + 1,
                    urgency_level=urgency_level(order.dps_score or 0.0, self.policy),
                    time_to_dispatch=time_to_dispatch(order, now),
                    dispatch_countdown_ms=dispatch_countdown_ms(order, now),
                )
            )
            if len(rows) >= n:
                break
        return rows

    def stats(self) -> QueueStats:
        ranking = self._ranking
        if not ranking:
            return QueueStats(
                total_orders=0,
                average_dps=0.0,
                overdue_count=0,
                urgency_distribution={},
                top_dps=0.0,
                lowest_dps=0.0,
                dirty_count=len(self._dirty),
            )

        scores = [o.dps_score or 0.0 for o in ranking]
        distribution: Dict[str, int] = {}
        for score in scores:
            level = urgency_level(score, self.policy).value
            distribution[level] = distribution.get(level, 0) + 1

        return QueueStats(
            total_orders=len(ranking),
            average_dps=round(sum(scores) / len(scores), 2),
            overdue_count=sum(1 for o in ranking if o.is_overdue),
            urgency_distribution=distribution,
            top_dps=scores[0],
            lowest_dps=scores[-1],
            dirty_count=len(self._dirty),
        )

    def performance_metrics(self) -> Dict[str, Any]:
        m = self._metrics
        return {
            "last_calculation_ms": round(m.last_calculation_ms, 3),
            "average_calculation_ms": round(m.average_calculation_ms, 3),
            "total_calculations": m.total_calculations,
            "score_computations": m.score_computations,
            "cache_hits": self._cache.hits,
            "cache_misses": self._cache.misses,
            "cache_size": len(self._cache),
            "queue_size": len(self._ranking),
            "dirty_orders": len(self._dirty),
            "last_calculation": m.last_calculation.isoformat() if m.last_calculation else None,
        }

    def sweep_cache(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        self._last_sweep_at = now
        return self._cache.sweep(now)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("DPS calculation cache cleared")

    # ---- Internal helpers ----

    def _pending_order_numbers(self) -> List[str]:
        # dirty orders plus anything that has never been scored, in load order
        return [
            number for number, order in self._orders.items()
            if number in self._dirty or order.dps_score is None
        ]

    def _score_order(self, order: Order, now: datetime) -> None:
        issues = scoring_issues(order)
        if issues:
            logger.warning(f"Order {order.order_number} cannot be scored ({'; '.join(issues)}); DPS set to 0")
            score = 0.0
            overdue = False  # unscoreable orders sink to the bottom
        else:
            cached = self._cache.get(order, now)
            if cached is None:
                score = calculate_dps(order, now=now, policy=self.policy)
                self._cache.put(order, now, score)
                self._metrics.score_computations += 1
            else:
                score = cached
            overdue = is_overdue(order, now)

        order.dps_score = score
        order.is_overdue = overdue
        order.urgency_level = urgency_level(score, self.policy)
        order.last_dps_calculation = now
        self._dirty.discard(order.order_number)

    def _finish(self, now: datetime, started: float, *, scored: int) -> List[Order]:
        self._ranking = sorted(self._orders.values(), key=ranking_key)
        self._has_ranking = True

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._metrics.record(elapsed_ms, now)
        logger.info(
            f"Queue updated: {scored} of {len(self._ranking)} orders rescored in {elapsed_ms:.2f}ms"
        )
        return list(self._ranking)

    def _maybe_sweep(self, now: datetime) -> None:
        interval = self.policy.cache_sweep_interval_sec
        if self._last_sweep_at is None:
            self._last_sweep_at = now
            return
        if (now - self._last_sweep_at).total_seconds() >= interval:
            self.sweep_cache(now)
