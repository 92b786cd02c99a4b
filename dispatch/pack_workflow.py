"""
Purpose: Track orders through picking and packing (one session per order).
What it does:
- start(): opens a session in PICKING, estimates pack time, classifies pack priority
- update_status(): enforces the pack transition table and stamps every status entered
- on PACKED: records the pick-to-pack duration against the worker
- on DISPATCHED: closes the session and moves it to a bounded history
- export_state()/restore_state(): JSON-compatible snapshot for whoever persists it
- emits pack-started / pack-status-updated / pack-completed / metrics-updated

Rule: Strict. Misuse (unknown order, double start, bad transition) raises; nothing is coerced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Set, Union

from orders.models import Order, PackStatus
from workers.models import WorkerMetrics
from workers.policy import PackTimePolicy, default_pack_policy
from .events import DispatchEvent, EventBus
from .scoring import utcnow
from .state_machines.pack_state import (
    OrderNotFoundError,
    SessionAlreadyActiveError,
    SessionNotFoundError,
    ensure_transition,
    to_pack_status,
)

if TYPE_CHECKING:
    from orders.batching.engine import BatchOptimizer

logger = logging.getLogger(__name__)

OrderLookup = Callable[[str], Optional[Order]]
CandidatePool = Callable[[], Iterable[Order]]


@dataclass
class PackNote:
    at: datetime
    note: str
    author: str


@dataclass
class PackSession:
    order_number: str
    worker_name: str
    status: PackStatus
    started_at: datetime
    priority: str
    estimated_duration: int
    timestamps: Dict[PackStatus, datetime] = field(default_factory=dict)
    actual_duration: Optional[int] = None
    notes: List[PackNote] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_number": self.order_number,
            "worker_name": self.worker_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "priority": self.priority,
            "estimated_duration": self.estimated_duration,
            "timestamps": {s.value: t.isoformat() for s, t in self.timestamps.items()},
            "actual_duration": self.actual_duration,
            "notes": [{"at": n.at.isoformat(), "note": n.note, "author": n.author} for n in self.notes],
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PackSession:
        completed = data.get("completed_at")
        return cls(
            order_number=data["order_number"],
            worker_name=data["worker_name"],
            status=PackStatus(data["status"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            priority=data["priority"],
            estimated_duration=int(data["estimated_duration"]),
            timestamps={PackStatus(s): datetime.fromisoformat(t) for s, t in data.get("timestamps", {}).items()},
            actual_duration=data.get("actual_duration"),
            notes=[
                PackNote(at=datetime.fromisoformat(n["at"]), note=n["note"], author=n["author"])
                for n in data.get("notes", [])
            ],
            completed_at=datetime.fromisoformat(completed) if completed else None,
        )


class PackSessionTracker:
    """
    In-memory pack workflow for a single warehouse floor.

    order_lookup:    order_number -> Order (or None). DispatchQueue.get_order fits.
    candidate_pool:  optional callable returning all orders; with batch_optimizer set,
                     start() looks for orders that could be packed alongside.
    """
    def __init__(
        self,
        order_lookup: OrderLookup,
        events: Optional[EventBus] = None,
        pack_policy: Optional[PackTimePolicy] = None,
        batch_optimizer: Optional[BatchOptimizer] = None,
        candidate_pool: Optional[CandidatePool] = None,
        history_limit: int = 100,
    ):
        if history_limit <= 0:
            raise ValueError("history_limit must be > 0")

        self.order_lookup = order_lookup
        self.events = events or EventBus()
        self.pack_policy = pack_policy or default_pack_policy()
        self.batch_optimizer = batch_optimizer
        self.candidate_pool = candidate_pool
        self.history_limit = history_limit

        self._sessions: Dict[str, PackSession] = {}
        self._history: List[PackSession] = []
        self._workers: Dict[str, WorkerMetrics] = {}
        self._total_pack_time = 0.0
        self._pack_count = 0

    # --- Public API ---

    def start(self, order_number: str, worker_name: str = "System", now: Optional[datetime] = None) -> PackSession:
        """
        Open a pack session in PICKING.

        Raises SessionAlreadyActiveError if the order already has a session,
        OrderNotFoundError if the lookup does not know the order.
        """
        if order_number in self._sessions:
            raise SessionAlreadyActiveError(f"Order {order_number} already in pack workflow")

        order = self.order_lookup(order_number)
        if order is None:
            raise OrderNotFoundError(f"Order {order_number} not found")

        now = now or utcnow()
        ensure_transition(order_number, order.status, PackStatus.PICKING)

        session = PackSession(
            order_number=order_number,
            worker_name=worker_name,
            status=PackStatus.PICKING,
            started_at=now,
            priority=self.pack_policy.pack_priority(order, now),
            estimated_duration=self.pack_policy.estimate_pack_minutes(order),
            timestamps={PackStatus.PICKING: now},
        )
        self._sessions[order_number] = session
        order.status = PackStatus.PICKING

        logger.info(f"Pack workflow started for order {order_number} by {worker_name}")
        self.events.emit(DispatchEvent.PACK_STARTED, {"order_number": order_number, "session": session})

        self._check_batch_opportunities(order, now)
        return session

    def update_status(
        self,
        order_number: str,
        new_status: Union[PackStatus, str],
        notes: str = "",
        now: Optional[datetime] = None,
    ) -> PackSession:
        """
        Move an active session to new_status.

        Raises SessionNotFoundError when there is no active session and
        InvalidTransitionError for anything outside the transition table.
        """
        session = self._sessions.get(order_number)
        if session is None:
            raise SessionNotFoundError(f"No active pack session for order {order_number}")

        target = to_pack_status(new_status)
        ensure_transition(order_number, session.status, target)

        now = now or utcnow()
        previous = session.status
        session.status = target
        session.timestamps[target] = now

        if notes:
            session.notes.append(PackNote(at=now, note=notes, author=session.worker_name))

        if target == PackStatus.PACKED:
            session.actual_duration = self._pack_duration(session)
            self._record_metrics(order_number, session.actual_duration, session.worker_name, now)

        order = self.order_lookup(order_number)
        if order is not None:
            order.status = target
        else:
            logger.warning(f"Order {order_number} disappeared from the order set during packing")

        if target == PackStatus.DISPATCHED:
            self._complete(session, now)

        logger.info(f"Order {order_number} moved {previous.value} -> {target.value}")
        self.events.emit(DispatchEvent.PACK_STATUS_UPDATED, {
            "order_number": order_number,
            "previous_status": previous,
            "new_status": target,
            "session": session,
        })
        if target == PackStatus.DISPATCHED:
            self.events.emit(DispatchEvent.PACK_COMPLETED, {"order_number": order_number, "session": session})
        return session

    def add_note(self, order_number: str, note: str, author: Optional[str] = None, now: Optional[datetime] = None) -> PackNote:
        session = self._sessions.get(order_number)
        if session is None:
            raise SessionNotFoundError(f"No active pack session for order {order_number}")
        entry = PackNote(at=now or utcnow(), note=note, author=author or session.worker_name)
        session.notes.append(entry)
        return entry

    def get_session(self, order_number: str) -> Optional[PackSession]:
        return self._sessions.get(order_number)

    def active_sessions(self) -> List[PackSession]:
        return list(self._sessions.values())

    def history(self) -> List[PackSession]:
        return list(self._history)

    def is_in_workflow(self, order_number: str) -> bool:
        return order_number in self._sessions

    def active_order_numbers(self) -> Set[str]:
        return set(self._sessions)

    def worker_metrics(self, worker_name: Optional[str] = None) -> Union[Optional[WorkerMetrics], Dict[str, WorkerMetrics]]:
        if worker_name is not None:
            return self._workers.get(worker_name)
        return dict(self._workers)

    def analytics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        average = self._total_pack_time / self._pack_count if self._pack_count else 0.0
        target = self.pack_policy.target_pack_minutes
        return {
            "active_sessions": len(self._sessions),
            "completed_today": sum(
                1 for s in self._history if s.completed_at and s.completed_at.date() == now.date()
            ),
            "average_pack_time": round(average, 2),
            "total_packs": self._pack_count,
            "total_workers": len(self._workers),
            "efficiency": round(target / average * 100) if average > 0 else 100,
        }

    def export_state(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Full JSON-compatible snapshot (sessions, history, worker metrics). Persisting it is the caller's job.
        """
        now = now or utcnow()
        return {
            "active_sessions": [s.to_dict() for s in self._sessions.values()],
            "history": [s.to_dict() for s in self._history],
            "worker_metrics": {name: m.to_dict() for name, m in self._workers.items()},
            "global_metrics": {"total_pack_time": self._total_pack_time, "pack_count": self._pack_count},
            "analytics": self.analytics(now),
            "exported_at": now.isoformat(),
        }

    def restore_state(self, snapshot: Dict[str, Any]) -> None:
        """
        Replace all tracker state with an export_state() snapshot.
        Orders still known to the lookup get their pack status back.
        """
        try:
            sessions = [PackSession.from_dict(s) for s in snapshot.get("active_sessions", [])]
            history = [PackSession.from_dict(s) for s in snapshot.get("history", [])]
            workers = {
                name: WorkerMetrics.from_dict(m)
                for name, m in snapshot.get("worker_metrics", {}).items()
            }
            totals = snapshot.get("global_metrics", {})
            total_pack_time = float(totals.get("total_pack_time", 0.0))
            pack_count = int(totals.get("pack_count", 0))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid pack workflow snapshot: {exc}") from exc

        self._sessions = {s.order_number: s for s in sessions}
        self._history = history[-self.history_limit:]
        self._workers = workers
        self._total_pack_time = total_pack_time
        self._pack_count = pack_count

        for session in sessions:
            order = self.order_lookup(session.order_number)
            if order is not None:
                order.status = session.status

        logger.info(f"Restored {len(sessions)} active pack sessions and {len(self._history)} history entries")

    # ---- Internal helpers ----

    def _pack_duration(self, session: PackSession) -> int:
        picking = session.timestamps.get(PackStatus.PICKING, session.started_at)
        packed = session.timestamps[PackStatus.PACKED]
        return round((packed - picking).total_seconds() / 60)

    def _record_metrics(self, order_number: str, minutes: int, worker_name: str, now: datetime) -> None:
        metrics = self._workers.setdefault(worker_name, WorkerMetrics(worker_name=worker_name))
        metrics.record(order_number, minutes, now)

        self._total_pack_time += minutes
        self._pack_count += 1

        logger.info(f"Order {order_number} packed in {minutes} minutes by {worker_name}")
        self.events.emit(DispatchEvent.METRICS_UPDATED, {
            "worker_name": worker_name,
            "metrics": metrics,
            "global_metrics": {"total_pack_time": self._total_pack_time, "pack_count": self._pack_count},
        })

    def _complete(self, session: PackSession, now: datetime) -> None:
        session.completed_at = now
        del self._sessions[session.order_number]
        self._history.append(session)
        if len(self._history) > self.history_limit:
            self._history = self._history[-self.history_limit:]

    def _check_batch_opportunities(self, order: Order, now: datetime) -> None:
        if self.batch_optimizer is None or self.candidate_pool is None:
            return

        busy = self.active_order_numbers()
        pool = [
            o for o in self.candidate_pool()
            if o.status != PackStatus.DISPATCHED and o.order_number not in busy
        ]
        analysis = self.batch_optimizer.find_batch_opportunities(order, pool, now=now)
        if not analysis.found:
            return

        logger.info(f"{len(analysis.opportunities)} batch opportunities found while starting {order.order_number}")
        # the optimizer already notified its own bus
        if self.batch_optimizer.events is not self.events:
            self.events.emit(DispatchEvent.BATCH_DETECTED, {"order_number": order.order_number, "analysis": analysis})
