import json
from datetime import timedelta

import pytest

from dispatch.events import DispatchEvent, EventBus
from dispatch.pack_workflow import PackSessionTracker
from dispatch.state_machines import (
    InvalidTransitionError,
    OrderNotFoundError,
    SessionAlreadyActiveError,
    SessionNotFoundError,
    is_valid_transition,
)
from orders.batching import BatchOptimizer
from orders.models import PackStatus


@pytest.fixture
def orders(make_order):
    return {
        "A": make_order("A", sku="X"),
        "B": make_order("B", sku="X"),
        "C": make_order("C", sku="Y", category="fragile", quantity=3, dispatch_in_hours=-2),
    }


@pytest.fixture
def tracker(orders):
    return PackSessionTracker(orders.get)


def _walk(tracker, number, now, *, pick=3, pack=4, ship=1):
    tracker.start(number, "Alex", now=now)
    tracker.update_status(number, PackStatus.PACKING, now=now + timedelta(minutes=pick))
    tracker.update_status(number, PackStatus.PACKED, now=now + timedelta(minutes=pick + pack))
    return tracker.update_status(number, PackStatus.DISPATCHED, now=now + timedelta(minutes=pick + pack + ship))


def test_transition_table():
    assert is_valid_transition("pending", "picking")
    assert is_valid_transition(PackStatus.PICKING, PackStatus.PENDING)
    assert is_valid_transition("PACKING", "picking")
    assert not is_valid_transition("pending", "packed")
    assert not is_valid_transition("dispatched", "pending")


def test_start_opens_a_picking_session(tracker, orders, now):
    session = tracker.start("A", "Alex", now=now)

    assert session.status == PackStatus.PICKING
    assert session.timestamps == {PackStatus.PICKING: now}
    assert session.priority == "medium"
    assert session.estimated_duration == 5
    assert orders["A"].status == PackStatus.PICKING
    assert tracker.is_in_workflow("A")


def test_start_estimates_from_quantity_and_category(tracker, now):
    session = tracker.start("C", now=now)
    # (5 + 2 * 2) * 2.0 for fragile
    assert session.estimated_duration == 18
    assert session.priority == "critical"
    assert session.worker_name == "System"


def test_start_unknown_order(tracker, now):
    with pytest.raises(OrderNotFoundError):
        tracker.start("Z", now=now)
    with pytest.raises(LookupError):
        tracker.start("Z", now=now)


def test_double_start_is_rejected(tracker, now):
    tracker.start("A", now=now)
    with pytest.raises(SessionAlreadyActiveError):
        tracker.start("A", now=now)


def test_cannot_restart_dispatched_order(tracker, orders, now):
    _walk(tracker, "A", now)
    assert orders["A"].status == PackStatus.DISPATCHED
    with pytest.raises(InvalidTransitionError):
        tracker.start("A", now=now + timedelta(hours=1))


def test_update_without_session(tracker):
    with pytest.raises(SessionNotFoundError):
        tracker.update_status("A", PackStatus.PACKING)


def test_invalid_transitions_leave_session_unchanged(tracker, orders, now):
    tracker.start("A", now=now)

    with pytest.raises(InvalidTransitionError):
        tracker.update_status("A", PackStatus.PACKED, now=now)
    with pytest.raises(InvalidTransitionError):
        tracker.update_status("A", "shipped", now=now)

    assert tracker.get_session("A").status == PackStatus.PICKING
    assert orders["A"].status == PackStatus.PICKING


def test_status_strings_are_accepted(tracker, now):
    tracker.start("A", now=now)
    session = tracker.update_status("A", "Packing", notes="bubble wrap", now=now + timedelta(minutes=2))
    assert session.status == PackStatus.PACKING
    assert [n.note for n in session.notes] == ["bubble wrap"]
    assert session.notes[0].author == session.worker_name


def test_packing_can_step_back(tracker, now):
    tracker.start("A", now=now)
    tracker.update_status("A", PackStatus.PACKING, now=now)
    tracker.update_status("A", PackStatus.PICKING, now=now + timedelta(minutes=1))
    tracker.update_status("A", PackStatus.PENDING, now=now + timedelta(minutes=2))
    assert tracker.get_session("A").status == PackStatus.PENDING


def test_full_walk_records_duration_and_history(tracker, now):
    session = _walk(tracker, "A", now, pick=3, pack=4)

    assert session.actual_duration == 7
    assert session.completed_at == now + timedelta(minutes=8)
    assert set(session.timestamps) == set(PackStatus) - {PackStatus.PENDING}
    assert not tracker.is_in_workflow("A")
    assert [s.order_number for s in tracker.history()] == ["A"]

    metrics = tracker.worker_metrics("Alex")
    assert metrics.pack_count == 1
    assert metrics.best_time == metrics.worst_time == 7
    assert metrics.packed_orders[0].order_number == "A"


def test_worker_and_global_metrics(tracker, now):
    _walk(tracker, "A", now, pick=2, pack=2)
    _walk(tracker, "B", now, pick=6, pack=6)

    metrics = tracker.worker_metrics("Alex")
    assert metrics.average_pack_time == 8
    assert (metrics.best_time, metrics.worst_time) == (4, 12)
    assert set(tracker.worker_metrics()) == {"Alex"}

    analytics = tracker.analytics(now=now)
    assert analytics["total_packs"] == 2
    assert analytics["average_pack_time"] == 8
    assert analytics["efficiency"] == 100
    assert analytics["completed_today"] == 2
    assert analytics["active_sessions"] == 0


def test_history_is_bounded(make_order, now):
    pool = {f"O{i}": make_order(f"O{i}") for i in range(5)}
    tracker = PackSessionTracker(pool.get, history_limit=3)
    for number in pool:
        _walk(tracker, number, now)
    assert [s.order_number for s in tracker.history()] == ["O2", "O3", "O4"]


def test_history_limit_must_be_positive(orders):
    with pytest.raises(ValueError):
        PackSessionTracker(orders.get, history_limit=0)


def test_add_note(tracker, now):
    tracker.start("A", "Alex", now=now)
    note = tracker.add_note("A", "Box damaged", author="Sam", now=now)
    assert note.author == "Sam"
    assert tracker.get_session("A").notes == [note]
    with pytest.raises(SessionNotFoundError):
        tracker.add_note("B", "nothing here")


def test_export_and_restore(orders, now):
    tracker = PackSessionTracker(orders.get)
    _walk(tracker, "A", now)
    tracker.start("B", "Jo", now=now)
    tracker.update_status("B", PackStatus.PACKING, notes="started", now=now + timedelta(minutes=1))

    snapshot = json.loads(json.dumps(tracker.export_state(now=now)))

    orders["B"].status = PackStatus.PENDING
    restored = PackSessionTracker(orders.get)
    restored.restore_state(snapshot)

    session = restored.get_session("B")
    assert session.status == PackStatus.PACKING
    assert session.timestamps[PackStatus.PACKING] == now + timedelta(minutes=1)
    assert session.notes[0].note == "started"
    assert orders["B"].status == PackStatus.PACKING
    assert [s.order_number for s in restored.history()] == ["A"]
    assert restored.worker_metrics("Alex").pack_count == 1
    assert restored.analytics(now=now)["total_packs"] == 1

    # the restored session keeps moving
    restored.update_status("B", PackStatus.PACKED, now=now + timedelta(minutes=5))
    assert restored.get_session("B").actual_duration == 5


def test_restore_rejects_garbage(tracker):
    with pytest.raises(ValueError):
        tracker.restore_state({"active_sessions": [{"order_number": "A"}]})


def test_events_are_emitted_in_order(orders, now):
    events = EventBus()
    seen = []
    for event in DispatchEvent:
        events.subscribe(event, lambda payload, e=event: seen.append(e))
    tracker = PackSessionTracker(orders.get, events=events)

    _walk(tracker, "A", now)

    assert seen == [
        DispatchEvent.PACK_STARTED,
        DispatchEvent.PACK_STATUS_UPDATED,
        DispatchEvent.METRICS_UPDATED,
        DispatchEvent.PACK_STATUS_UPDATED,
        DispatchEvent.PACK_STATUS_UPDATED,
        DispatchEvent.PACK_COMPLETED,
    ]


def test_failing_subscriber_does_not_break_workflow(orders, now):
    events = EventBus()
    received = []

    def broken(payload):
        raise RuntimeError("listener down")

    events.subscribe(DispatchEvent.PACK_STARTED, broken)
    events.subscribe(DispatchEvent.PACK_STARTED, received.append)
    tracker = PackSessionTracker(orders.get, events=events)

    tracker.start("A", now=now)

    assert received[0]["order_number"] == "A"
    assert tracker.is_in_workflow("A")


def test_unsubscribe(orders, now):
    events = EventBus()
    received = []
    unsubscribe = events.subscribe("pack-started", received.append)
    unsubscribe()
    assert events.subscriber_count(DispatchEvent.PACK_STARTED) == 0
    assert events.emit(DispatchEvent.PACK_STARTED, {}) == 0
    assert received == []


def test_start_checks_batch_opportunities(orders, now):
    events = EventBus()
    detected = []
    events.subscribe(DispatchEvent.BATCH_DETECTED, detected.append)

    tracker = PackSessionTracker(
        orders.get,
        events=events,
        batch_optimizer=BatchOptimizer(),
        candidate_pool=lambda: orders.values(),
    )
    tracker.start("A", now=now)

    assert len(detected) == 1
    analysis = detected[0]["analysis"]
    assert "B" in analysis.opportunities[0].order_numbers
    assert analysis.target_order == "A"


def test_shared_bus_gets_one_batch_event(orders, now):
    events = EventBus()
    detected = []
    events.subscribe(DispatchEvent.BATCH_DETECTED, detected.append)

    tracker = PackSessionTracker(
        orders.get,
        events=events,
        batch_optimizer=BatchOptimizer(events=events),
        candidate_pool=lambda: orders.values(),
    )
    tracker.start("A", now=now)
    assert len(detected) == 1


def test_orders_in_workflow_are_not_batch_candidates(orders, now):
    detected = []
    tracker = PackSessionTracker(orders.get, batch_optimizer=BatchOptimizer(), candidate_pool=lambda: orders.values())
    tracker.events.subscribe(DispatchEvent.BATCH_DETECTED, detected.append)

    tracker.start("B", now=now)
    tracker.start("A", now=now)

    # B is already being picked when A starts, leaving A nothing worth batching with
    assert [d["order_number"] for d in detected] == ["B"]
