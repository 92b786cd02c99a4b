from datetime import timedelta

import pytest

from workers import PackTimePolicy, WorkerMetrics, default_pack_policy


@pytest.mark.parametrize("quantity,category,expected", [
    (1, "standard", 5),
    (3, "standard", 9),
    (1, "Electronics", 8),
    (2, "fragile", 14),
    (1, "heavy", 7),
    (1, "mystery", 5),
    (1, None, 5),
])
def test_estimate_pack_minutes(make_order, quantity, category, expected):
    order = make_order(quantity=quantity, category=category)
    assert default_pack_policy().estimate_pack_minutes(order) == expected


@pytest.mark.parametrize("dispatch_in_hours,expected", [
    (-5, "critical"),
    (0, "critical"),
    (10, "high"),
    (24, "high"),
    (30, "medium"),
    (72, "medium"),
    (80, "low"),
])
def test_pack_priority(make_order, now, dispatch_in_hours, expected):
    order = make_order(dispatch_in_hours=dispatch_in_hours)
    assert default_pack_policy().pack_priority(order, now) == expected


def test_pack_priority_without_dispatch_date(make_order, now):
    order = make_order()
    order.expected_dispatch = None
    assert default_pack_policy().pack_priority(order, now) == "medium"


def test_policy_validation():
    with pytest.raises(ValueError):
        PackTimePolicy(base_pack_minutes=0).validate()
    with pytest.raises(ValueError):
        PackTimePolicy(category_multipliers={"fragile": 0}).validate()


def test_worker_metrics_round_trip(now):
    metrics = WorkerMetrics(worker_name="Alex")
    metrics.record("A", 6, now)
    metrics.record("B", 10, now + timedelta(minutes=20))

    assert metrics.average_pack_time == 8
    restored = WorkerMetrics.from_dict(metrics.to_dict())
    assert restored.best_time == 6
    assert restored.worst_time == 10
    assert restored.shift_date == now.date()
    assert [r.order_number for r in restored.packed_orders] == ["A", "B"]
