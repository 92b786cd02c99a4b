"""
Purpose: Central configuration for pack-time estimates and pack priority.
What it does:

Stores the heuristics used when a pack session starts:

BASE_PACK_MINUTES = 5, +2 min per extra unit
CATEGORY_MULTIPLIERS = electronics 1.5, fragile 2.0, heavy 1.3, standard 1.0
TARGET_PACK_MINUTES = 8 (overall efficiency reference)

Rule: No workflow state here, just parameters and the two small estimates built on them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from orders.models import Order


@dataclass(frozen=True)
class PackTimePolicy:
    base_pack_minutes: float = 5
    minutes_per_extra_unit: float = 2
    category_multipliers: Dict[str, float] = field(default_factory=lambda: {
        "electronics": 1.5,
        "fragile": 2.0,
        "heavy": 1.3,
        "standard": 1.0,
    })
    target_pack_minutes: float = 8

    def validate(self) -> None:
        if self.base_pack_minutes <= 0:
            raise ValueError("base_pack_minutes must be > 0")
        if self.minutes_per_extra_unit < 0:
            raise ValueError("minutes_per_extra_unit must be >= 0")
        if self.target_pack_minutes <= 0:
            raise ValueError("target_pack_minutes must be > 0")
        if any(m <= 0 for m in self.category_multipliers.values()):
            raise ValueError("category multipliers must be > 0")

    def estimate_pack_minutes(self, order: Order) -> int:
        minutes = self.base_pack_minutes + max(0, order.quantity - 1) * self.minutes_per_extra_unit
        multiplier = self.category_multipliers.get((order.category or "").strip().lower(), 1.0)
        return math.ceil(minutes * multiplier)

    def pack_priority(self, order: Order, now: datetime) -> str:
        """
        critical / high / medium / low from whole days until dispatch (rounded up).
        Unknown dispatch dates are medium.
        """
        if order.expected_dispatch is None:
            return "medium"
        days = math.ceil((order.expected_dispatch - now).total_seconds() / 86400)
        if days <= 0:
            return "critical"
        if days == 1:
            return "high"
        if days <= 3:
            return "medium"
        return "low"


def default_pack_policy() -> PackTimePolicy:
    p = PackTimePolicy()
    p.validate()
    return p
