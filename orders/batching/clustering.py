"""
Purpose: Form candidate batches around a target order.
What it does:

Runs four independent grouping analyses over the eligible pool:

- SKU: exact SKU match, plus "similar SKU" through a pluggable matcher
- geographic: same county, plus adjacent counties (CountyAdjacency)
- urgency: orders within +/- urgency_tolerance of the target, none above the risk score
- value: high-value targets only group with other high-value orders

Then builds hybrid batches: intersections of candidates from two or more
of those families that still hold at least min_hybrid_orders orders.

Every candidate starts with the target order and is capped at max_batch_size.

Rule: Clustering does not score time savings; it only forms candidate groups.
"""

# orders/batching/clustering.py

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations, product
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from ..models import Order
from .feasibility import UrgencyLookup
from .geography import CountyAdjacency
from .policy import BatchingPolicy

# (target_sku, candidate_sku) -> are they "similar"?
SkuMatcher = Callable[[str, str], bool]

FAMILIES: Tuple[str, ...] = ("sku", "geographic", "urgency", "value")

# Efficiency bonus per factor family when it takes part in a hybrid batch
HYBRID_FACTOR_BONUS: Dict[str, float] = {
    "sku": 0.25,
    "geographic": 0.15,
    "urgency": 0.10,
    "value": 0.05,
}

_HYBRID_LABELS = {
    "sku": "Same SKU",
    "geographic": "Geographic",
    "urgency": "Urgency",
    "value": "High value",
}


@dataclass(frozen=True)
class CandidateBatch:
    """
    A group of orders that could be picked and packed together.

    type:      family ("sku", "geographic", "urgency", "value", "hybrid")
    strategy:  finer reason ("sku_exact", "geographic_adjacent", "hybrid_sku_geographic", ...)
    factors:   families this batch was built from (one entry unless hybrid)
    """
    type: str
    strategy: str
    orders: List[Order]
    priority: str
    description: str
    factors: Tuple[str, ...]
    similarity_multiplier: float = 1.0
    county_bonus: float = 0.0

    @property
    def order_numbers(self) -> List[str]:
        return [o.order_number for o in self.orders]

    @property
    def size(self) -> int:
        return len(self.orders)


def prefix_sku_matcher(prefix_length: int = 6, min_prefix: int = 3) -> SkuMatcher:
    """
    Placeholder similarity: two SKUs are similar when they share the target's
    leading characters (target length minus 2, at most prefix_length).
    Too-short prefixes match nothing.
    """
    def matches(target_sku: str, candidate_sku: str) -> bool:
        prefix = target_sku[:min(len(target_sku) - 2, prefix_length)]
        if len(prefix) < min_prefix:
            return False
        return candidate_sku.startswith(prefix)

    return matches


def analyze_sku_batches(
    target: Order,
    eligible: Sequence[Order],
    policy: BatchingPolicy,
    sku_matcher: Optional[SkuMatcher] = None,
) -> List[CandidateBatch]:
    if not target.sku:
        return []

    matcher = sku_matcher or prefix_sku_matcher(policy.similar_sku_prefix_length, policy.min_similar_sku_prefix)
    with_sku = [o for o in eligible if o.sku]
    label = target.product or target.sku

    out: List[CandidateBatch] = []

    exact = [o for o in with_sku if o.sku == target.sku]
    if exact:
        orders = _with_target(target, exact, policy)
        out.append(CandidateBatch(
            type="sku",
            strategy="sku_exact",
            orders=orders,
            priority="high",
            description=f"Identical SKU batch: {len(orders)} orders of {label}",
            factors=("sku",),
        ))

    similar = [o for o in with_sku if o.sku != target.sku and matcher(target.sku, o.sku)]
    if similar:
        orders = _with_target(target, similar, policy)
        out.append(CandidateBatch(
            type="sku",
            strategy="sku_similar",
            orders=orders,
            priority="medium",
            description=f"Similar SKU batch: {len(orders)} orders of related products",
            factors=("sku",),
            similarity_multiplier=policy.similar_sku_multiplier,
        ))

    return out


def analyze_geographic_batches(
    target: Order,
    eligible: Sequence[Order],
    policy: BatchingPolicy,
    adjacency: CountyAdjacency,
) -> List[CandidateBatch]:
    if not target.county:
        return []

    out: List[CandidateBatch] = []

    same = [o for o in eligible if adjacency.same_county(target.county, o.county)]
    if same:
        orders = _with_target(target, same, policy)
        out.append(CandidateBatch(
            type="geographic",
            strategy="geographic_same",
            orders=orders,
            priority="medium",
            description=f"Same county delivery: {len(orders)} orders to {target.county}",
            factors=("geographic",),
            county_bonus=policy.same_county_bonus,
        ))

    adjacent = [o for o in eligible if adjacency.are_adjacent(target.county, o.county)]
    if adjacent:
        orders = _with_target(target, adjacent, policy)
        out.append(CandidateBatch(
            type="geographic",
            strategy="geographic_adjacent",
            orders=orders,
            priority="low",
            description=f"Adjacent counties: {len(orders)} orders in nearby regions",
            factors=("geographic",),
            county_bonus=policy.adjacent_county_bonus,
        ))

    return out


def analyze_urgency_batches(
    target: Order,
    eligible: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
) -> List[CandidateBatch]:
    target_urgency = urgency.get(target.order_number, 0.0)

    compatible = [
        o for o in eligible
        if abs(urgency.get(o.order_number, 0.0) - target_urgency) <= policy.urgency_tolerance
        and urgency.get(o.order_number, 0.0) < policy.risk_urgency_score
    ]
    if not compatible:
        return []

    orders = _with_target(target, compatible, policy)
    return [CandidateBatch(
        type="urgency",
        strategy="urgency_similar",
        orders=orders,
        priority=urgency_priority(target_urgency),
        description=f"Similar urgency batch: {len(orders)} orders with compatible deadlines",
        factors=("urgency",),
    )]


def analyze_value_batches(
    target: Order,
    eligible: Sequence[Order],
    policy: BatchingPolicy,
) -> List[CandidateBatch]:
    if target.value < policy.high_value_threshold:
        return []

    premium = [o for o in eligible if o.value >= policy.high_value_threshold]
    if not premium:
        return []

    orders = _with_target(target, premium, policy)
    total = sum(o.value for o in orders)
    return [CandidateBatch(
        type="value",
        strategy="value_high",
        orders=orders,
        priority="high",
        description=f"High-value batch: {len(orders)} premium orders worth £{total:.2f}",
        factors=("value",),
    )]


def build_hybrid_batches(
    target: Order,
    candidates: Sequence[CandidateBatch],
    policy: BatchingPolicy,
) -> List[CandidateBatch]:
    """
    Intersect one candidate from each of two or more families.

    Only intersections that keep at least min_hybrid_orders orders (target included)
    survive, and identical order sets are produced once (the first, widest-factor
    combination is kept).
    """
    by_family: Dict[str, List[CandidateBatch]] = {}
    for c in candidates:
        if c.type in FAMILIES:
            by_family.setdefault(c.type, []).append(c)

    present = [f for f in FAMILIES if f in by_family]
    seen: Set[FrozenSet[str]] = set()
    out: List[CandidateBatch] = []

    # widest combinations first, so dedupe keeps the most specific explanation
    for size in range(len(present), 1, -1):
        for families in combinations(present, size):
            for picked in product(*(by_family[f] for f in families)):
                members = _intersection(target, picked)
                if len(members) < policy.min_hybrid_orders:
                    continue

                key = frozenset(o.order_number for o in members)
                if key in seen:
                    continue
                seen.add(key)

                orders = members[:policy.max_batch_size]
                labels = " + ".join(_HYBRID_LABELS[f] for f in families)
                out.append(CandidateBatch(
                    type="hybrid",
                    strategy="hybrid_" + "_".join(families),
                    orders=orders,
                    priority="high",
                    description=f"Hybrid optimization: {labels} ({len(orders)} orders)",
                    factors=tuple(families),
                ))

    return out


def build_candidate_batches(
    target: Order,
    eligible: Sequence[Order],
    urgency: UrgencyLookup,
    policy: BatchingPolicy,
    adjacency: CountyAdjacency,
    sku_matcher: Optional[SkuMatcher] = None,
) -> List[CandidateBatch]:
    """
    All single-factor candidates followed by their hybrids.
    """
    singles: List[CandidateBatch] = []
    singles.extend(analyze_sku_batches(target, eligible, policy, sku_matcher))
    singles.extend(analyze_geographic_batches(target, eligible, policy, adjacency))
    singles.extend(analyze_urgency_batches(target, eligible, urgency, policy))
    singles.extend(analyze_value_batches(target, eligible, policy))

    return singles + build_hybrid_batches(target, singles, policy)


def urgency_priority(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


# -------------------------
# Internal helpers
# -------------------------

def _with_target(target: Order, others: Sequence[Order], policy: BatchingPolicy) -> List[Order]:
    return [target, *others][:policy.max_batch_size]


def _intersection(target: Order, picked: Sequence[CandidateBatch]) -> List[Order]:
    common = set(picked[0].order_numbers)
    for c in picked[1:]:
        common &= set(c.order_numbers)
    # keep the first candidate's ordering (target is always first)
    return [o for o in picked[0].orders if o.order_number in common or o.order_number == target.order_number]
