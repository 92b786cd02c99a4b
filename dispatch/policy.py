"""
Purpose: Central configuration for Dispatch Priority Scoring (DPS).
What it does:

Stores all tunable weights/thresholds for the priority scorer and its cache:

WEIGHTS = dispatch 0.60 / delivery 0.20 / age 0.10 / value 0.10

URGENCY LEVELS = 80 critical, 60 high, 40 medium, 20 low

CACHE_TTL_SEC = 300, CACHE_BUCKET_SEC = 3600

Environment overrides are read from .env (see scoring_policy_from_env).

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Central configuration for DPS scoring and the queue's score cache.
    """

    # --- Component weights (must sum to 1.0) ---
    dispatch_weight: float = 0.60   # time until expected dispatch
    delivery_weight: float = 0.20   # delivery-by window from order date
    age_weight: float = 0.10        # time since order date
    value_weight: float = 0.10      # order total

    # --- Urgency level thresholds (on the 0-100 DPS scale) ---
    critical_threshold: float = 80
    high_threshold: float = 60
    medium_threshold: float = 40
    low_threshold: float = 20

    # --- Score cache ---
    # Entries are bucketed by hour so they self-invalidate as time passes,
    # and dropped by the periodic sweep once older than the TTL.
    cache_ttl_sec: int = 300
    cache_bucket_sec: int = 3600
    cache_sweep_interval_sec: int = 600

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup if you want.
        """
        weights = (self.dispatch_weight, self.delivery_weight, self.age_weight, self.value_weight)
        if any(w < 0 for w in weights):
            raise ValueError("DPS weights must be >= 0")

        if abs(sum(weights) - 1.0) > 1e-6:
            raise ValueError(f"DPS weights must sum to 1.0 (got {sum(weights):.4f})")

        thresholds = (self.critical_threshold, self.high_threshold, self.medium_threshold, self.low_threshold)
        if list(thresholds) != sorted(thresholds, reverse=True):
            raise ValueError("urgency thresholds must be descending: critical >= high >= medium >= low")

        if self.cache_ttl_sec <= 0 or self.cache_bucket_sec <= 0:
            raise ValueError("cache ttl and bucket seconds must be > 0")

        if self.cache_sweep_interval_sec < 0:
            raise ValueError("cache_sweep_interval_sec must be >= 0")


def default_scoring_policy() -> ScoringPolicy:
    """
    Convenience factory for the default policy.
    """
    p = ScoringPolicy()
    p.validate()
    return p


def scoring_policy_from_env() -> ScoringPolicy:
    """
    Build a policy from environment variables (and a .env file if present).
    Unset variables keep their defaults.
    """
    load_dotenv()
    defaults = ScoringPolicy()
    p = ScoringPolicy(
        dispatch_weight=env_float("DPS_WEIGHT_DISPATCH", defaults.dispatch_weight),
        delivery_weight=env_float("DPS_WEIGHT_DELIVERY", defaults.delivery_weight),
        age_weight=env_float("DPS_WEIGHT_AGE", defaults.age_weight),
        value_weight=env_float("DPS_WEIGHT_VALUE", defaults.value_weight),
        cache_ttl_sec=env_int("DPS_CACHE_TTL_SEC", defaults.cache_ttl_sec),
    )
    p.validate()
    return p


# -------------------------
# env helpers (shared with orders.batching.policy)
# -------------------------

def env_float(name: str, default: float) -> float:
    raw: Optional[str] = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def env_int(name: str, default: int) -> int:
    raw: Optional[str] = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
