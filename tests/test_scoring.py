from datetime import timedelta

import pytest

from dispatch.policy import ScoringPolicy, scoring_policy_from_env
from dispatch.scoring import (
    calculate_dps,
    delivery_promise_score,
    dispatch_countdown_ms,
    dispatch_deadline_score,
    is_overdue,
    order_age_score,
    order_value_score,
    score_breakdown,
    time_to_dispatch,
    urgency_level,
)
from orders.models import Order, UrgencyLevel


@pytest.mark.parametrize("hours, expected", [
    (-5, 100), (0, 100), (1.5, 100), (3, 90), (6, 80), (10, 70), (20, 50), (40, 25), (58, 24), (400, 0),
])
def test_dispatch_deadline_steps(now, hours, expected):
    assert dispatch_deadline_score(now, now + timedelta(hours=hours)) == pytest.approx(expected)


@pytest.mark.parametrize("window, expected", [
    (None, 50), (12, 100), (24, 100), (36, 80), (60, 60), (100, 40), (150, 20), (200, 10),
])
def test_delivery_promise_steps(now, window, expected):
    delivery_by = None if window is None else now + timedelta(hours=window)
    assert delivery_promise_score(now, delivery_by) == expected


@pytest.mark.parametrize("age, expected", [
    (1, 10), (4, 20), (10, 30), (20, 50), (30, 70), (60, 85), (100, 100),
])
def test_order_age_steps(now, age, expected):
    assert order_age_score(now, now - timedelta(hours=age)) == expected


@pytest.mark.parametrize("total, expected", [
    (None, 0), (-10, 0), (0, 0), (25, 10), (40, 20), (100, 30), (200, 50), (500, 70), (900, 85), (1001, 100),
])
def test_order_value_steps(total, expected):
    assert order_value_score(total) == expected


def test_value_score_is_monotonic():
    totals = [t / 2 for t in range(-20, 2600)]
    scores = [order_value_score(t) for t in totals]
    assert all(a <= b for a, b in zip(scores, scores[1:]))


def test_weighted_total(make_order, now):
    # dispatch 30h -> 25, no delivery promise -> 50, age 10h -> 30, total 100 -> 30
    order = make_order(age_hours=10, dispatch_in_hours=30, total=100)
    breakdown = score_breakdown(order, now)
    assert (breakdown.dispatch_deadline, breakdown.delivery_promise, breakdown.order_age, breakdown.order_value) == (25, 50, 30, 30)
    assert calculate_dps(order, now) == pytest.approx(15 + 10 + 3 + 3)


def test_documented_overdue_scenario_follows_step_tables(now):
    # dispatch 1h ago, ordered 26h ago, delivery promised 24h from now (a 50h window), £1500:
    # sub-scores 100 / 60 / 70 / 100
    order = Order(
        order_number="A",
        order_date=now - timedelta(hours=26),
        expected_dispatch=now - timedelta(hours=1),
        delivery_by=now + timedelta(hours=24),
        order_total=1500,
    )
    breakdown = score_breakdown(order, now)
    assert breakdown.dispatch_deadline == 100
    assert breakdown.delivery_promise == 60
    assert breakdown.order_age == 70
    assert breakdown.order_value == 100
    assert calculate_dps(order, now) == 89.0


def test_every_component_maxed_scores_100(now):
    order_date = now - timedelta(hours=80)
    order = Order(
        order_number="A",
        order_date=order_date,
        expected_dispatch=now - timedelta(hours=1),
        delivery_by=order_date + timedelta(hours=20),
        order_total=1500,
    )
    assert calculate_dps(order, now) == 100.0


@pytest.mark.parametrize("window", [None, 12, 48])
@pytest.mark.parametrize("age", [0.5, 30, 100])
@pytest.mark.parametrize("total", [0, 10, 5000])
def test_overdue_orders_score_high(make_order, now, window, age, total):
    order = make_order(age_hours=age, dispatch_in_hours=-2, delivery_window_hours=window, total=total)
    assert calculate_dps(order, now) >= 70


def test_scores_stay_in_range(make_order, now):
    for dispatch in (-100, -1, 0, 1, 5, 13, 47, 200, 5000):
        for total in (-50, 0, 30, 2000):
            score = calculate_dps(make_order(dispatch_in_hours=dispatch, total=total), now)
            assert 0 <= score <= 100


@pytest.mark.parametrize("field", ["order_date", "expected_dispatch", "order_total"])
def test_missing_required_field_scores_zero(make_order, now, field):
    order = make_order()
    setattr(order, field, None)
    assert calculate_dps(order, now) == 0.0
    assert score_breakdown(order, now) is None


def test_unparseable_dates_score_zero(now):
    order = Order.from_record({
        "orderNumber": "BAD-1",
        "orderDate": "31/02/2025",
        "expectedDispatch": "soon",
        "orderTotal": 10,
    })
    assert calculate_dps(order, now) == 0.0


@pytest.mark.parametrize("score, level", [
    (95, UrgencyLevel.CRITICAL), (80, UrgencyLevel.CRITICAL), (79.99, UrgencyLevel.HIGH),
    (60, UrgencyLevel.HIGH), (45, UrgencyLevel.MEDIUM), (20, UrgencyLevel.LOW), (5, UrgencyLevel.NORMAL),
])
def test_urgency_levels(score, level):
    assert urgency_level(score) == level


def test_time_to_dispatch_formats(make_order, now):
    assert time_to_dispatch(make_order(dispatch_in_hours=-1), now) == "OVERDUE"
    assert time_to_dispatch(make_order(dispatch_in_hours=0.75), now) == "45m"
    assert time_to_dispatch(make_order(dispatch_in_hours=3.2), now) == "3h 12m"
    assert time_to_dispatch(make_order(dispatch_in_hours=52), now) == "2d 4h"
    assert time_to_dispatch(Order("X"), now) == "Unknown"


def test_countdown_never_negative(make_order, now):
    assert dispatch_countdown_ms(make_order(dispatch_in_hours=-3), now) == 0
    assert dispatch_countdown_ms(make_order(dispatch_in_hours=1), now) == 3_600_000


def test_is_overdue(make_order, now):
    assert is_overdue(make_order(dispatch_in_hours=-0.1), now)
    assert not is_overdue(make_order(dispatch_in_hours=0.1), now)
    assert not is_overdue(Order("X"), now)


def test_custom_weights_change_the_score(make_order, now):
    policy = ScoringPolicy(dispatch_weight=0.0, delivery_weight=0.0, age_weight=0.0, value_weight=1.0)
    assert calculate_dps(make_order(total=2000), now, policy) == 100.0


def test_policy_rejects_bad_weights():
    with pytest.raises(ValueError):
        ScoringPolicy(dispatch_weight=0.9).validate()


def test_policy_from_env(monkeypatch):
    monkeypatch.setenv("DPS_WEIGHT_DISPATCH", "0.5")
    monkeypatch.setenv("DPS_WEIGHT_DELIVERY", "0.3")
    monkeypatch.setenv("DPS_CACHE_TTL_SEC", "60")
    policy = scoring_policy_from_env()
    assert policy.dispatch_weight == 0.5
    assert policy.delivery_weight == 0.3
    assert policy.cache_ttl_sec == 60


def test_policy_from_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("DPS_CACHE_TTL_SEC", "five")
    with pytest.raises(ValueError):
        scoring_policy_from_env()
