"""
Purpose: Estimate what each candidate batch saves, then rank them.
What it does:

Computes for each candidate batch (all minutes):

base_time  = n * base_picking
reduction  = factor-specific (SKU picking/travel/packing, county bonus, urgency, value, hybrid bonus)
batch_time = max(base_time * floor, setup + base_time - reduction)
savings    = max(0, base_time - batch_time)
gain %     = savings / base_time * 100
cost       = savings * cost_per_minute
risk       = min(1, max_urgency/100 + size penalty + high value penalty)

Applies acceptance rules from policy:

savings >= min_time_savings (0.8x for adjacent counties, 1.2x for hybrids)

Ranks survivors:

efficiency gain desc (within 5 points = tie), savings desc (within 1 min = tie), risk asc

Rule: Scoring chooses what to recommend; it does not build groups or track state.
"""

# orders/batching/scoring.py

from __future__ import annotations

from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Dict, List, Sequence

from ..models import Order
from .clustering import HYBRID_FACTOR_BONUS, CandidateBatch
from .feasibility import UrgencyLookup
from .policy import BatchingPolicy


@dataclass(frozen=True)
class EfficiencyEstimate:
    base_time: float
    batch_time: float
    time_savings: float
    efficiency_gain: float      # percent of base_time
    cost_savings: float         # GBP
    risk_score: float           # 0..1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_time_minutes": round(self.base_time, 1),
            "batch_time_minutes": round(self.batch_time, 1),
            "time_savings_minutes": round(self.time_savings, 1),
            "efficiency_gain_percent": round(self.efficiency_gain, 1),
            "cost_savings_pounds": round(self.cost_savings, 2),
            "risk_score": round(self.risk_score, 2),
        }


@dataclass(frozen=True)
class ScoredBatch:
    candidate: CandidateBatch
    efficiency: EfficiencyEstimate


# -------------------------
# Reductions (minutes)
# -------------------------

def sku_reduction(n: int, multiplier: float, policy: BatchingPolicy) -> float:
    """
    Every extra order of the same SKU skips a pick and a walk; every order packs faster.
    """
    if n <= 0:
        return 0.0
    per_extra = policy.item_picking_reduction + policy.location_travel_minutes
    return (n - 1) * per_extra * multiplier + n * policy.packing_efficiency * multiplier


def geographic_reduction(base_time: float, county_bonus: float) -> float:
    return base_time * county_bonus


def urgency_reduction(base_time: float, average_urgency: float) -> float:
    # more urgent batches get less slack, so they save less
    return base_time * (0.15 - average_urgency / 100 * 0.2)


def value_reduction(base_time: float, average_value: float, policy: BatchingPolicy) -> float:
    premium_handling = 0.5 if average_value > policy.premium_value_threshold else 0.2
    return base_time * 0.10 - premium_handling


def hybrid_reduction(base_time: float, factors: Sequence[str]) -> float:
    return base_time * sum(HYBRID_FACTOR_BONUS.get(f, 0.0) for f in factors)


# -------------------------
# Time / risk model
# -------------------------

def estimate_from_reduction(
    orders: Sequence[Order],
    reduction: float,
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> EfficiencyEstimate:
    n = len(orders)
    base_time = n * policy.base_picking_minutes
    if base_time <= 0:
        return EfficiencyEstimate(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    batch_time = max(base_time * policy.batch_time_floor, policy.batch_setup_minutes + base_time - reduction)
    savings = max(0.0, base_time - batch_time)

    return EfficiencyEstimate(
        base_time=base_time,
        batch_time=batch_time,
        time_savings=savings,
        efficiency_gain=savings / base_time * 100,
        cost_savings=savings * policy.cost_per_minute,
        risk_score=risk_score(orders, urgency, policy),
    )


def risk_score(orders: Sequence[Order], urgency: UrgencyLookup, policy: BatchingPolicy) -> float:
    max_urgency = max((urgency.get(o.order_number, 0.0) for o in orders), default=0.0)
    risk = max_urgency / 100
    if len(orders) > 5:
        risk += 0.2
    if any(o.value >= policy.premium_value_threshold for o in orders):
        risk += 0.1
    return min(1.0, risk)


def estimate_efficiency(
    candidate: CandidateBatch,
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> EfficiencyEstimate:
    orders = candidate.orders
    n = len(orders)
    base_time = n * policy.base_picking_minutes

    if candidate.type == "sku":
        reduction = sku_reduction(n, candidate.similarity_multiplier, policy)
    elif candidate.type == "geographic":
        reduction = geographic_reduction(base_time, candidate.county_bonus)
    elif candidate.type == "urgency":
        avg = sum(urgency.get(o.order_number, 0.0) for o in orders) / n if n else 0.0
        reduction = urgency_reduction(base_time, avg)
    elif candidate.type == "value":
        avg = sum(o.value for o in orders) / n if n else 0.0
        reduction = value_reduction(base_time, avg, policy)
    elif candidate.type == "hybrid":
        reduction = hybrid_reduction(base_time, candidate.factors)
    else:
        raise ValueError(f"Unknown batch type: {candidate.type}")

    return estimate_from_reduction(orders, reduction, urgency, policy)


def estimate_execution(
    orders: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> EfficiencyEstimate:
    """
    Estimate for an arbitrary approved batch: SKU savings apply only when every
    order carries the same SKU, otherwise it is plain picking plus setup.
    """
    skus = {o.sku for o in orders}
    if len(skus) == 1 and None not in skus:
        reduction = sku_reduction(len(orders), 1.0, policy)
    else:
        reduction = 0.0
    return estimate_from_reduction(orders, reduction, urgency, policy)


def min_savings_for(candidate: CandidateBatch, policy: BatchingPolicy) -> float:
    if candidate.type == "hybrid":
        return policy.min_time_savings * policy.hybrid_savings_factor
    if candidate.strategy == "geographic_adjacent":
        return policy.min_time_savings * policy.adjacent_savings_factor
    return policy.min_time_savings


def meets_savings_bar(scored: ScoredBatch, policy: BatchingPolicy) -> bool:
    return scored.efficiency.time_savings >= min_savings_for(scored.candidate, policy)


# -------------------------
# Ranking
# -------------------------

def rank_batches(batches: Sequence[ScoredBatch], policy: BatchingPolicy) -> List[ScoredBatch]:
    """
    Sort by efficiency gain, then time savings, then risk; keep the top max_recommendations.
    Differences inside the tolerance bands count as ties and fall through to the next criterion.
    """
    def compare(a: ScoredBatch, b: ScoredBatch) -> int:
        gain_diff = b.efficiency.efficiency_gain - a.efficiency.efficiency_gain
        if abs(gain_diff) > policy.ranking_gain_tolerance:
            return 1 if gain_diff > 0 else -1

        time_diff = b.efficiency.time_savings - a.efficiency.time_savings
        if abs(time_diff) > policy.ranking_time_tolerance:
            return 1 if time_diff > 0 else -1

        risk_diff = a.efficiency.risk_score - b.efficiency.risk_score
        if risk_diff:
            return 1 if risk_diff > 0 else -1
        return 0

    ranked = sorted(batches, key=cmp_to_key(compare))
    return ranked[:policy.max_recommendations]
