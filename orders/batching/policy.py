"""
Purpose: Central configuration for batching behavior (single source of truth).
What it does:

Stores all tunable thresholds/caps:

BASE_PICKING = 3.5 min/order, BATCH_SETUP = 1.2 min

CRITICAL_URGENCY = 85 (never batch above), RISK_URGENCY = 60

MIN_TIME_SAVINGS = 1.5 min, MAX_BATCH_SIZE = 8

SAME_COUNTY_BONUS = 0.30, ADJACENT_COUNTY_BONUS = 0.15

Optionally reads overrides from the environment (.env) via policy_from_env().

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass

from dotenv import load_dotenv

from dispatch.policy import env_float, env_int


@dataclass(frozen=True)
class BatchingPolicy:
    """
    Central configuration for batch detection.

    Keep all batching thresholds here so behavior can be tuned without
    touching batching logic (engine/feasibility/clustering/scoring).

    Notes:
    - All times are minutes. The time model is:
        base  = n * base_picking_minutes
        batch = max(base * batch_time_floor, batch_setup_minutes + base - reduction)
      where "reduction" depends on why the orders were grouped.
    - Urgency scores are DPS values (0-100).
    """

    # --- Time model (minutes) ---
    base_picking_minutes: float = 3.5
    batch_setup_minutes: float = 1.2
    item_picking_reduction: float = 0.6     # saved per extra order of the same SKU
    location_travel_minutes: float = 0.8    # walk saved per extra order at the same pick face
    packing_efficiency: float = 0.75        # packing saved per order of similar items
    similar_sku_multiplier: float = 0.7     # confidence applied to "similar SKU" savings
    batch_time_floor: float = 0.3           # batch never takes less than 30% of base time
    cost_per_minute: float = 0.50           # GBP

    # --- Urgency thresholds ---
    # Never batch anything above this (it risks missing its deadline).
    critical_urgency_score: float = 85
    # Above this, an order is a deadline risk: kept out of urgency/value batches.
    risk_urgency_score: float = 60
    # Urgency batches group orders within +/- this many points of the target.
    urgency_tolerance: float = 15
    # Orders already this late against their delivery promise are not batched.
    max_batch_delay_hours: float = 2

    # --- Efficiency requirements ---
    min_time_savings: float = 1.5
    adjacent_savings_factor: float = 0.8    # adjacent-county batches use 0.8x the bar
    hybrid_savings_factor: float = 1.2      # hybrid batches use 1.2x the bar
    min_hybrid_orders: int = 3
    max_batch_size: int = 8

    # --- Ranking ---
    max_recommendations: int = 10
    ranking_gain_tolerance: float = 5       # efficiency-gain points treated as a tie
    ranking_time_tolerance: float = 1       # minutes treated as a tie

    # --- Geographic grouping ---
    same_county_bonus: float = 0.30
    adjacent_county_bonus: float = 0.15

    # --- Value protection (GBP) ---
    high_value_threshold: float = 500
    premium_value_threshold: float = 1000
    high_value_batch_total: float = 5000

    # --- Similar SKU (placeholder prefix heuristic) ---
    similar_sku_prefix_length: int = 6
    min_similar_sku_prefix: int = 3

    # --- Analysis cache ---
    analysis_cache_ttl_sec: int = 300

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup if you want.
        """
        if self.max_batch_size < 2:
            raise ValueError("max_batch_size must be >= 2")

        if self.base_picking_minutes <= 0:
            raise ValueError("base_picking_minutes must be > 0")

        if self.batch_setup_minutes < 0:
            raise ValueError("batch_setup_minutes must be >= 0")

        if not 0.0 <= self.batch_time_floor <= 1.0:
            raise ValueError("batch_time_floor must be within [0, 1]")

        if self.min_time_savings < 0:
            raise ValueError("min_time_savings must be >= 0")

        if not 0 <= self.risk_urgency_score <= self.critical_urgency_score <= 100:
            raise ValueError("need 0 <= risk_urgency_score <= critical_urgency_score <= 100")

        if self.max_batch_delay_hours < 0:
            raise ValueError("max_batch_delay_hours must be >= 0")

        if self.min_hybrid_orders < 2:
            raise ValueError("min_hybrid_orders must be >= 2")

        if self.max_recommendations <= 0:
            raise ValueError("max_recommendations must be > 0")

        if self.similar_sku_prefix_length < self.min_similar_sku_prefix:
            raise ValueError("similar_sku_prefix_length must be >= min_similar_sku_prefix")


def default_policy() -> BatchingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = BatchingPolicy()
    p.validate()
    return p


def policy_from_env() -> BatchingPolicy:
    """
    Build a policy from environment variables (and a .env file if present).
    Unset variables keep their defaults.
    """
    load_dotenv()
    defaults = BatchingPolicy()
    p = BatchingPolicy(
        max_batch_size=env_int("BATCH_MAX_SIZE", defaults.max_batch_size),
        min_time_savings=env_float("BATCH_MIN_TIME_SAVINGS", defaults.min_time_savings),
        critical_urgency_score=env_float("BATCH_CRITICAL_URGENCY", defaults.critical_urgency_score),
        risk_urgency_score=env_float("BATCH_RISK_URGENCY", defaults.risk_urgency_score),
        max_batch_delay_hours=env_float("BATCH_MAX_DELAY_HOURS", defaults.max_batch_delay_hours),
        cost_per_minute=env_float("BATCH_COST_PER_MINUTE", defaults.cost_per_minute),
    )
    p.validate()
    return p
