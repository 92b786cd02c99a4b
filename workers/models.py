"""
Purpose: Core data models for the workers domain.
What it does:
Accumulates per-worker packing performance (reporting only, never used for scheduling).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass
class PackedOrderRecord:
    order_number: str
    duration_minutes: float
    packed_at: datetime


@dataclass
class WorkerMetrics:
    """
    Running totals for one worker: count, total, average, best and worst pack time (minutes).
    """
    worker_name: str
    total_pack_time: float = 0.0
    pack_count: int = 0
    best_time: Optional[float] = None
    worst_time: Optional[float] = None
    shift_date: Optional[date] = None
    packed_orders: List[PackedOrderRecord] = field(default_factory=list)

    @property
    def average_pack_time(self) -> float:
        if self.pack_count == 0:
            return 0.0
        return self.total_pack_time / self.pack_count

    def record(self, order_number: str, minutes: float, at: datetime) -> None:
        self.total_pack_time += minutes
        self.pack_count += 1
        self.best_time = minutes if self.best_time is None else min(self.best_time, minutes)
        self.worst_time = minutes if self.worst_time is None else max(self.worst_time, minutes)
        self.shift_date = at.date()
        self.packed_orders.append(PackedOrderRecord(order_number, minutes, at))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_name": self.worker_name,
            "total_pack_time": self.total_pack_time,
            "pack_count": self.pack_count,
            "average_pack_time": round(self.average_pack_time, 2),
            "best_time": self.best_time,
            "worst_time": self.worst_time,
            "shift_date": self.shift_date.isoformat() if self.shift_date else None,
            "packed_orders": [
                {
                    "order_number": r.order_number,
                    "duration_minutes": r.duration_minutes,
                    "packed_at": r.packed_at.isoformat(),
                }
                for r in self.packed_orders
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WorkerMetrics:
        shift = data.get("shift_date")
        return cls(
            worker_name=data["worker_name"],
            total_pack_time=float(data.get("total_pack_time", 0.0)),
            pack_count=int(data.get("pack_count", 0)),
            best_time=data.get("best_time"),
            worst_time=data.get("worst_time"),
            shift_date=date.fromisoformat(shift) if shift else None,
            packed_orders=[
                PackedOrderRecord(
                    order_number=r["order_number"],
                    duration_minutes=float(r["duration_minutes"]),
                    packed_at=datetime.fromisoformat(r["packed_at"]),
                )
                for r in data.get("packed_orders", [])
            ],
        )
