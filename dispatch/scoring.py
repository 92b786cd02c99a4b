"""
Purpose: Ranking model for the dispatch queue (the "what next" layer).
What it does:
- Weighted Dispatch Priority Score (DPS), 0-100, from four stepped sub-scores:
    dispatch deadline (60%) / delivery promise (20%) / order age (10%) / order value (10%)
- Deterministic tie-breaking for the ranking (overdue, value, age, order number)
- Display helpers: urgency level, countdown, human readable time to dispatch

Rule: pure functions of (order, now). No caching, no queue state, no logging of
data problems; callers decide how to report scoring_issues().
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from orders.models import Order, UrgencyLevel
from .policy import ScoringPolicy, default_scoring_policy

_SECONDS_PER_HOUR = 3600.0
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DPSBreakdown:
    """
    The four component scores (each 0-100) and the weighted, clamped total.
    """
    dispatch_deadline: float
    delivery_promise: float
    order_age: float
    order_value: float
    total: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------
# Component scores
# -------------------------

def dispatch_deadline_score(now: datetime, expected_dispatch: datetime) -> float:
    """
    Closer to the dispatch deadline = higher priority. Overdue orders get 100.
    """
    hours = (expected_dispatch - now).total_seconds() / _SECONDS_PER_HOUR

    if hours <= 0:
        return 100.0
    if hours <= 2:
        return 100.0
    if hours <= 4:
        return 90.0
    if hours <= 8:
        return 80.0
    if hours <= 12:
        return 70.0
    if hours <= 24:
        return 50.0
    if hours <= 48:
        return 25.0

    return max(0.0, 25.0 - (hours - 48) / 10)


def delivery_promise_score(order_date: datetime, delivery_by: Optional[datetime]) -> float:
    """
    Tighter promised delivery windows get higher priority. No promise = neutral 50.
    """
    if delivery_by is None:
        return 50.0

    window_hours = (delivery_by - order_date).total_seconds() / _SECONDS_PER_HOUR

    if window_hours <= 24:
        return 100.0  # same day
    if window_hours <= 48:
        return 80.0   # next day
    if window_hours <= 72:
        return 60.0
    if window_hours <= 120:
        return 40.0
    if window_hours <= 168:
        return 20.0

    return 10.0


def order_age_score(now: datetime, order_date: datetime) -> float:
    """
    Older orders climb so nothing stagnates at the bottom of the queue.
    """
    age_hours = (now - order_date).total_seconds() / _SECONDS_PER_HOUR

    if age_hours <= 2:
        return 10.0
    if age_hours <= 6:
        return 20.0
    if age_hours <= 12:
        return 30.0
    if age_hours <= 24:
        return 50.0
    if age_hours <= 48:
        return 70.0
    if age_hours <= 72:
        return 85.0

    return 100.0


def order_value_score(order_total: Optional[float]) -> float:
    """
    Stepped, monotonic non-decreasing in the order total (GBP).
    Missing and negative totals fall in the zero class.
    """
    if order_total is None or order_total <= 0:
        return 0.0
    if order_total <= 25:
        return 10.0
    if order_total <= 50:
        return 20.0
    if order_total <= 100:
        return 30.0
    if order_total <= 250:
        return 50.0
    if order_total <= 500:
        return 70.0
    if order_total <= 1000:
        return 85.0

    return 100.0


# -------------------------
# DPS
# -------------------------

def scoring_issues(order: Order) -> List[str]:
    """
    Reasons this order cannot be scored. Empty list = scoreable.
    """
    issues: List[str] = []
    if not order.order_number:
        issues.append("orderNumber missing")
    if order.order_date is None:
        issues.append("orderDate missing or unparseable")
    if order.expected_dispatch is None:
        issues.append("expectedDispatch missing or unparseable")
    if order.order_total is None:
        issues.append("orderTotal missing or unparseable")
    return issues


def score_breakdown(
    order: Order,
    now: Optional[datetime] = None,
    policy: Optional[ScoringPolicy] = None,
) -> Optional[DPSBreakdown]:
    """
    Compute every DPS component for an order. Returns None if the order is not scoreable.
    """
    if scoring_issues(order):
        return None

    now = now or utcnow()
    policy = policy or default_scoring_policy()

    dispatch = dispatch_deadline_score(now, order.expected_dispatch)
    delivery = delivery_promise_score(order.order_date, order.delivery_by)
    age = order_age_score(now, order.order_date)
    value = order_value_score(order.order_total)

    weighted = (
        dispatch * policy.dispatch_weight
        + delivery * policy.delivery_weight
        + age * policy.age_weight
        + value * policy.value_weight
    )
    total = max(0.0, min(100.0, round(weighted, 2)))

    return DPSBreakdown(
        dispatch_deadline=dispatch,
        delivery_promise=delivery,
        order_age=age,
        order_value=value,
        total=total,
    )


def calculate_dps(
    order: Order,
    now: Optional[datetime] = None,
    policy: Optional[ScoringPolicy] = None,
) -> float:
    """
    Dispatch Priority Score in [0, 100], deterministic for (order, now).

    Fails soft: an order missing a required field (or with unparseable dates)
    scores exactly 0.0 instead of raising.
    """
    breakdown = score_breakdown(order, now=now, policy=policy)
    if breakdown is None:
        return 0.0
    return breakdown.total


def urgency_level(dps_score: float, policy: Optional[ScoringPolicy] = None) -> UrgencyLevel:
    policy = policy or default_scoring_policy()
    if dps_score >= policy.critical_threshold:
        return UrgencyLevel.CRITICAL
    if dps_score >= policy.high_threshold:
        return UrgencyLevel.HIGH
    if dps_score >= policy.medium_threshold:
        return UrgencyLevel.MEDIUM
    if dps_score >= policy.low_threshold:
        return UrgencyLevel.LOW
    return UrgencyLevel.NORMAL


def is_overdue(order: Order, now: Optional[datetime] = None) -> bool:
    if order.expected_dispatch is None:
        return False
    now = now or utcnow()
    return now > order.expected_dispatch


# -------------------------
# Ranking
# -------------------------

def ranking_key(order: Order) -> Tuple[float, int, float, datetime, str]:
    """
    Sort key for the priority ranking (ascending sort = highest priority first):
      1) DPS descending
      2) overdue before not overdue
      3) order value descending
      4) older order date first (missing dates last)
      5) order number, so equal orders still sort deterministically
    """
    return (
        -(order.dps_score or 0.0),
        0 if order.is_overdue else 1,
        -order.value,
        order.order_date or _FAR_FUTURE,
        order.order_number,
    )


# -------------------------
# Countdown helpers (for UI annotations)
# -------------------------

def dispatch_countdown_ms(order: Order, now: Optional[datetime] = None) -> int:
    """
    Milliseconds until the dispatch deadline, never negative. 0 when unknown.
    """
    if order.expected_dispatch is None:
        return 0
    now = now or utcnow()
    remaining = (order.expected_dispatch - now).total_seconds() * 1000
    return max(0, int(remaining))


def time_to_dispatch(order: Order, now: Optional[datetime] = None) -> str:
    """
    "OVERDUE", "45m", "3h 12m", "2d 4h" or "Unknown".
    """
    if order.expected_dispatch is None:
        return "Unknown"

    now = now or utcnow()
    remaining_sec = (order.expected_dispatch - now).total_seconds()
    if remaining_sec <= 0:
        return "OVERDUE"

    hours = math.floor(remaining_sec / _SECONDS_PER_HOUR)
    minutes = math.floor((remaining_sec % _SECONDS_PER_HOUR) / 60)

    if hours <= 0:
        return f"{minutes}m"
    if hours < 24:
        return f"{hours}h {minutes}m"

    days, remaining_hours = divmod(hours, 24)
    return f"{days}d {remaining_hours}h"
