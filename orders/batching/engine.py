"""
Purpose: The batching "orchestrator" (single entry point).
What it does:

Coordinates the pipeline end-to-end for one target order:

- scores urgency for the target and the candidate pool (dispatch.scoring)

- filters the pool down to eligible orders (feasibility.py)

- forms SKU / geographic / urgency / value / hybrid candidates (clustering.py)

- estimates savings, drops weak candidates, ranks the rest (scoring.py)

- enriches the top candidates with feasibility, execution steps and warnings

Public entry points:

- BatchOptimizer.find_batch_opportunities(target, pool) -> BatchAnalysis

- BatchOptimizer.execute_batch(orders) -> BatchExecution

Rule: Engine is the only file other modules should call directly for batching.
It never mutates the orders it is given.
"""

# orders/batching/engine.py

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from dispatch.events import DispatchEvent, EventBus
from dispatch.policy import ScoringPolicy, default_scoring_policy
from dispatch.scoring import utcnow
from ..models import Order
from .clustering import CandidateBatch, SkuMatcher, build_candidate_batches
from .feasibility import (
    BatchWarning,
    FeasibilityAssessment,
    assess_feasibility,
    batch_warnings,
    filter_eligible_orders,
    urgency_lookup,
    validate_batch_for_execution,
)
from .geography import CountyAdjacency
from .policy import BatchingPolicy, default_policy
from .scoring import (
    EfficiencyEstimate,
    ScoredBatch,
    estimate_efficiency,
    estimate_execution,
    meets_savings_bar,
    rank_batches,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchAction:
    step: int
    action: str
    estimated_minutes: int
    priority: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "action": self.action,
            "estimated_time": f"{self.estimated_minutes} minutes",
            "priority": self.priority,
        }


@dataclass
class BatchRecommendation:
    """
    One ranked, ready-to-show batch. Always holds the target plus at least one other order.
    """
    rank: int
    batch_id: str
    type: str
    strategy: str
    priority: str
    description: str
    orders: List[Order]
    efficiency: EfficiencyEstimate
    feasibility: FeasibilityAssessment
    actions: List[BatchAction]
    warnings: List[BatchWarning]
    urgency: Dict[str, float] = field(default_factory=dict)

    @property
    def order_numbers(self) -> List[str]:
        return [o.order_number for o in self.orders]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "batch_id": self.batch_id,
            "type": self.type,
            "strategy": self.strategy,
            "priority": self.priority,
            "description": self.description,
            "orders": [
                {
                    "order_number": o.order_number,
                    "customer": o.customer.name if o.customer else None,
                    "product": o.product,
                    "sku": o.sku,
                    "value": o.value,
                    "urgency_score": self.urgency.get(o.order_number, 0.0),
                    "county": o.county,
                }
                for o in self.orders
            ],
            "efficiency": self.efficiency.to_dict(),
            "feasibility": self.feasibility.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class BatchAnalysis:
    target_order: str
    opportunities: List[BatchRecommendation]
    reason: Optional[str] = None
    total_eligible_orders: int = 0
    processing_time_ms: float = 0.0
    generated_at: datetime = field(default_factory=utcnow)
    cache_status: str = "miss"

    @property
    def found(self) -> bool:
        return bool(self.opportunities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_order": self.target_order,
            "opportunities": [r.to_dict() for r in self.opportunities],
            "reason": self.reason,
            "total_eligible_orders": self.total_eligible_orders,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "generated_at": self.generated_at.isoformat(),
            "cache_status": self.cache_status,
        }


@dataclass
class BatchOrderProgress:
    order_number: str
    status: str = "pending"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    issues: List[str] = field(default_factory=list)


@dataclass
class BatchExecution:
    """
    Tracking record for an approved batch. Order pack status is not touched here;
    the pack workflow moves each order as work happens.
    """
    batch_id: str
    started_at: datetime
    orders: List[BatchOrderProgress]
    efficiency: EfficiencyEstimate
    estimated_completion: datetime
    status: str = "in_progress"

    @property
    def total_orders(self) -> int:
        return len(self.orders)

    @property
    def completed_orders(self) -> int:
        return sum(1 for o in self.orders if o.status == "completed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "estimated_completion": self.estimated_completion.isoformat(),
            "total_orders": self.total_orders,
            "completed_orders": self.completed_orders,
            "orders": [
                {
                    "order_number": p.order_number,
                    "status": p.status,
                    "started_at": p.started_at.isoformat() if p.started_at else None,
                    "completed_at": p.completed_at.isoformat() if p.completed_at else None,
                    "issues": list(p.issues),
                }
                for p in self.orders
            ],
            "efficiency": self.efficiency.to_dict(),
        }


@dataclass
class _Analytics:
    analyses_run: int = 0
    batches_created: int = 0
    total_time_saved: float = 0.0
    total_cost_savings: float = 0.0
    efficiency_gains: List[float] = field(default_factory=list)
    rejected_batches: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


class BatchOptimizer:
    """
    Finds and executes batch opportunities for a target order.

    Each optimizer owns its analysis cache and analytics, so independent instances
    do not share results.
    """
    def __init__(
        self,
        policy: Optional[BatchingPolicy] = None,
        adjacency: Optional[CountyAdjacency] = None,
        scoring_policy: Optional[ScoringPolicy] = None,
        events: Optional[EventBus] = None,
        sku_matcher: Optional[SkuMatcher] = None,
    ):
        self.policy = policy or default_policy()
        self.policy.validate()
        self.adjacency = adjacency or CountyAdjacency.default()
        self.scoring_policy = scoring_policy or default_scoring_policy()
        self.events = events
        self.sku_matcher = sku_matcher

        self._cache: Dict[Tuple, Tuple[BatchAnalysis, datetime]] = {}
        self._analytics = _Analytics()

    # --- Public API ---

    def find_batch_opportunities(
        self,
        target: Order,
        pool: Sequence[Order],
        now: Optional[datetime] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> BatchAnalysis:
        """
        Ranked batch recommendations for `target` drawn from `pool`.

        Never raises for bad order data: unusable orders are simply not batched,
        and an empty result carries a reason.
        """
        now = now or utcnow()
        hidden = set(exclude or ())
        pool = [o for o in pool if o.order_number not in hidden]

        key = _analysis_key(target, pool)
        cached = self._cache.get(key)
        if cached is not None:
            analysis, at = cached
            if (now - at).total_seconds() < self.policy.analysis_cache_ttl_sec:
                self._analytics.cache_hits += 1
                logger.debug(f"Batch analysis for {target.order_number} served from cache")
                return replace(analysis, cache_status="hit")
            del self._cache[key]

        self._analytics.cache_misses += 1
        started = time.perf_counter()
        analysis = self._analyze(target, pool, now)
        analysis = replace(analysis, processing_time_ms=(time.perf_counter() - started) * 1000)

        self._cache[key] = (analysis, now)
        self._analytics.analyses_run += 1

        if analysis.opportunities:
            logger.info(
                f"Found {len(analysis.opportunities)} batch opportunities for order {target.order_number} "
                f"in {analysis.processing_time_ms:.2f}ms"
            )
            if self.events is not None:
                self.events.emit(DispatchEvent.BATCH_DETECTED, {
                    "order_number": target.order_number,
                    "analysis": analysis,
                })
        else:
            logger.info(f"No batch opportunities for order {target.order_number}: {analysis.reason}")

        return analysis

    def execute_batch(self, orders: Sequence[Order], now: Optional[datetime] = None) -> BatchExecution:
        """
        Validate an approved batch and start tracking it.

        Raises BatchValidationError for fewer than 2 orders, more than max_batch_size,
        duplicates, or any order above the critical urgency ceiling.
        """
        now = now or utcnow()
        urgency = urgency_lookup(orders, now, self.scoring_policy)
        validate_batch_for_execution(orders, urgency, self.policy)

        efficiency = estimate_execution(orders, urgency, self.policy)
        execution = BatchExecution(
            batch_id=_new_batch_id(len(orders)),
            started_at=now,
            orders=[BatchOrderProgress(order_number=o.order_number) for o in orders],
            efficiency=efficiency,
            estimated_completion=now + timedelta(minutes=efficiency.batch_time),
        )

        a = self._analytics
        a.batches_created += 1
        a.total_time_saved += efficiency.time_savings
        a.total_cost_savings += efficiency.cost_savings
        a.efficiency_gains.append(efficiency.efficiency_gain)

        logger.info(
            f"Executing batch {execution.batch_id} with {len(orders)} orders, "
            f"estimated savings {efficiency.time_savings:.1f} minutes"
        )
        return execution

    def performance_analytics(self) -> Dict[str, Any]:
        a = self._analytics
        lookups = a.cache_hits + a.cache_misses
        gains = a.efficiency_gains
        return {
            "analyses_run": a.analyses_run,
            "batches_created": a.batches_created,
            "total_time_saved_minutes": round(a.total_time_saved, 1),
            "total_cost_savings_pounds": round(a.total_cost_savings, 2),
            "average_efficiency_gain_percent": round(sum(gains) / len(gains), 1) if gains else 0.0,
            "rejected_batches": a.rejected_batches,
            "cache_hits": a.cache_hits,
            "cache_misses": a.cache_misses,
            "cache_hit_rate": round(a.cache_hits / lookups * 100, 1) if lookups else 0.0,
            "cache_size": len(self._cache),
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Batch analysis cache cleared")

    # ---- Internal helpers ----

    def _analyze(self, target: Order, pool: Sequence[Order], now: datetime) -> BatchAnalysis:
        policy = self.policy
        urgency = urgency_lookup([target, *pool], now, self.scoring_policy)

        target_urgency = urgency[target.order_number]
        if target_urgency > policy.critical_urgency_score:
            return self._empty(
                target,
                f"Order urgency {target_urgency:.1f} exceeds critical threshold {policy.critical_urgency_score:g}; dispatch individually",
                now,
            )

        if not target.item_key:
            return self._empty(target, "Order has no SKU or product to batch on", now)

        eligibility = filter_eligible_orders(target, pool, urgency, policy, now)
        for number, why in eligibility.rejected.items():
            logger.debug(f"Order {number} not eligible for batching with {target.order_number}: {why}")

        if not eligibility.eligible:
            return self._empty(target, "No eligible orders available for batching", now)

        candidates = build_candidate_batches(
            target,
            eligibility.eligible,
            urgency,
            policy,
            self.adjacency,
            self.sku_matcher,
        )

        scored: List[ScoredBatch] = []
        for candidate in candidates:
            if candidate.size < 2:
                continue
            s = ScoredBatch(candidate=candidate, efficiency=estimate_efficiency(candidate, urgency, policy))
            if meets_savings_bar(s, policy):
                scored.append(s)
            else:
                self._analytics.rejected_batches += 1

        ranked = rank_batches(scored, policy)
        if not ranked:
            return BatchAnalysis(
                target_order=target.order_number,
                opportunities=[],
                reason="No batch opportunities meet the minimum time savings",
                total_eligible_orders=len(eligibility.eligible),
                generated_at=now,
            )

        recommendations = [
            self._recommend(rank, s, urgency) for rank, s in enumerate(ranked, start=1)
        ]
        return BatchAnalysis(
            target_order=target.order_number,
            opportunities=recommendations,
            total_eligible_orders=len(eligibility.eligible),
            generated_at=now,
        )

    def _recommend(self, rank: int, scored: ScoredBatch, urgency: Dict[str, float]) -> BatchRecommendation:
        c = scored.candidate
        return BatchRecommendation(
            rank=rank,
            batch_id=_new_batch_id(c.size),
            type=c.type,
            strategy=c.strategy,
            priority=c.priority,
            description=c.description,
            orders=list(c.orders),
            efficiency=scored.efficiency,
            feasibility=assess_feasibility(c.orders, urgency, self.policy),
            actions=_batch_actions(c, scored.efficiency),
            warnings=batch_warnings(c.orders, urgency, self.policy),
            urgency={o.order_number: urgency.get(o.order_number, 0.0) for o in c.orders},
        )

    def _empty(self, target: Order, reason: str, now: datetime) -> BatchAnalysis:
        return BatchAnalysis(target_order=target.order_number, opportunities=[], reason=reason, generated_at=now)


def _batch_actions(candidate: CandidateBatch, efficiency: EfficiencyEstimate) -> List[BatchAction]:
    steps: List[Tuple[str, int, str]] = []
    if "sku" in candidate.factors:
        steps.append(("Group identical SKUs for efficient picking", 2, "high"))
    if "geographic" in candidate.factors:
        steps.append(("Organize by delivery zones", 1, "medium"))
    steps.append(("Prepare batch packing materials", 1, "medium"))
    steps.append(("Execute coordinated pick-pack workflow", round(efficiency.batch_time), "high"))

    return [
        BatchAction(step=i, action=action, estimated_minutes=minutes, priority=priority)
        for i, (action, minutes, priority) in enumerate(steps, start=1)
    ]


def _new_batch_id(order_count: int) -> str:
    return f"BTH-{order_count}-{uuid.uuid4().hex[:8].upper()}"


def _analysis_key(target: Order, pool: Sequence[Order]) -> Tuple:
    # membership plus every input that feeds urgency, eligibility or grouping
    return (_fingerprint(target), tuple(sorted(_fingerprint(o) for o in pool)))


def _fingerprint(order: Order) -> Tuple:
    return (
        order.order_number,
        repr(order.order_date),
        repr(order.expected_dispatch),
        repr(order.delivery_by),
        repr(order.order_total),
        order.sku or "",
        order.product or "",
        order.county or "",
    )
