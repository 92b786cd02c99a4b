"""
Purpose: Decide which orders are even allowed to be batched, and how practical a batch is.
What it does:

Eligibility (before any grouping runs):
- drops the target itself and anything the caller excludes (e.g. orders already in a pack session)
- drops orders above the critical urgency ceiling (they must go out on their own)
- drops orders with no SKU and no product name (nothing to group on)
- drops orders already later than max_batch_delay_hours against their delivery promise

Practicality (after a batch has been formed):
- feasibility score (starts at 100, deducted for urgency, size and county spread)
- human readable warnings
- execution validation (raises BatchValidationError)

Rule: Feasibility never computes time savings; that is scoring.py.
"""

# orders/batching/feasibility.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from dispatch.policy import ScoringPolicy
from dispatch.scoring import calculate_dps
from ..models import Order
from .policy import BatchingPolicy

# order_number -> urgency score (DPS, 0-100)
UrgencyLookup = Mapping[str, float]


class BatchValidationError(ValueError):
    """
    Raised when a batch cannot be executed (too small, too large, or holds a critical order).
    """
    pass


@dataclass(frozen=True)
class EligibilityResult:
    eligible: List[Order]
    # order_number -> why it was left out
    rejected: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FeasibilityAssessment:
    score: int
    rating: str
    factors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "rating": self.rating, "factors": list(self.factors)}


@dataclass(frozen=True)
class BatchWarning:
    type: str
    severity: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "severity": self.severity, "message": self.message}


def order_urgency(order: Order, now: datetime, scoring_policy: Optional[ScoringPolicy] = None) -> float:
    """
    Urgency used for batching decisions: the order's DPS at `now`.
    Unscoreable orders come out as 0.
    """
    return calculate_dps(order, now=now, policy=scoring_policy)


def urgency_lookup(
    orders: Iterable[Order],
    now: datetime,
    scoring_policy: Optional[ScoringPolicy] = None,
) -> Dict[str, float]:
    return {o.order_number: order_urgency(o, now, scoring_policy) for o in orders}


def delivery_delay_minutes(order: Order, now: datetime) -> float:
    """
    How late the order already is against its delivery promise. 0 when on time or no promise.
    """
    if order.delivery_by is None:
        return 0.0
    return max(0.0, (now - order.delivery_by).total_seconds() / 60)


def filter_eligible_orders(
    target: Order,
    pool: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
    now: datetime,
    *,
    exclude: Optional[Iterable[str]] = None,
) -> EligibilityResult:
    """
    Filter the candidate pool down to orders that may share a batch with `target`.
    Pool order is preserved.
    """
    hidden = set(exclude or ())
    max_delay = policy.max_batch_delay_hours * 60

    eligible: List[Order] = []
    rejected: Dict[str, str] = {}
    seen = {target.order_number}

    for o in pool:
        if o.order_number in seen:
            continue
        seen.add(o.order_number)

        if o.order_number in hidden:
            rejected[o.order_number] = "excluded by caller"
            continue

        score = urgency.get(o.order_number, 0.0)
        if score > policy.critical_urgency_score:
            rejected[o.order_number] = f"urgency {score:.1f} above critical ceiling"
            continue

        if not o.item_key:
            rejected[o.order_number] = "no SKU or product"
            continue

        delay = delivery_delay_minutes(o, now)
        if delay > max_delay:
            rejected[o.order_number] = f"already {delay:.0f} minutes past delivery promise"
            continue

        eligible.append(o)

    return EligibilityResult(eligible=eligible, rejected=rejected)


def assess_feasibility(
    orders: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> FeasibilityAssessment:
    score = 100
    factors: List[str] = []

    max_urgency = max((urgency.get(o.order_number, 0.0) for o in orders), default=0.0)
    if max_urgency > policy.risk_urgency_score:
        score -= 30
        factors.append("High urgency orders present")

    if len(orders) > 6:
        score -= 15
        factors.append("Large batch size may be complex")

    counties = {(o.county or "").strip().casefold() for o in orders}
    counties.discard("")
    if len(counties) > 3:
        score -= 20
        factors.append("Multiple delivery counties")

    return FeasibilityAssessment(score=score, rating=feasibility_rating(score), factors=factors)


def feasibility_rating(score: float) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def batch_warnings(
    orders: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> List[BatchWarning]:
    warnings: List[BatchWarning] = []

    max_urgency = max((urgency.get(o.order_number, 0.0) for o in orders), default=0.0)
    if max_urgency > policy.risk_urgency_score:
        warnings.append(BatchWarning(
            type="urgency",
            severity="high",
            message=f"Contains orders with urgency score {max_urgency:.1f} - monitor deadlines closely",
        ))

    total_value = sum(o.value for o in orders)
    if total_value > policy.high_value_batch_total:
        warnings.append(BatchWarning(
            type="value",
            severity="medium",
            message=f"High-value batch (£{total_value:.2f}) - ensure extra care in handling",
        ))

    if len(orders) > 6:
        warnings.append(BatchWarning(
            type="complexity",
            severity="medium",
            message=f"Large batch ({len(orders)} orders) - consider splitting if workflow becomes complex",
        ))

    return warnings


def validate_batch_for_execution(
    orders: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> None:
    """
    Raise BatchValidationError if this set of orders must not be executed as one batch.
    """
    if len(orders) < 2:
        raise BatchValidationError("Batch must contain at least 2 orders")

    if len(orders) > policy.max_batch_size:
        raise BatchValidationError(f"Batch size {len(orders)} exceeds maximum of {policy.max_batch_size}")

    numbers = [o.order_number for o in orders]
    if len(set(numbers)) != len(numbers):
        raise BatchValidationError("Batch contains the same order more than once")

    critical = [n for n in numbers if urgency.get(n, 0.0) > policy.critical_urgency_score]
    if critical:
        raise BatchValidationError(f"Batch contains critical urgency orders: {', '.join(critical)}")
