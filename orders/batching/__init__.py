"""
Batching subpackage for the Orders domain.

Public API:
- BatchOptimizer (find_batch_opportunities / execute_batch)
- BatchAnalysis, BatchRecommendation, BatchExecution
- BatchingPolicy, CountyAdjacency
- BatchValidationError
"""

from .engine import (
    BatchAction,
    BatchAnalysis,
    BatchExecution,
    BatchOptimizer,
    BatchRecommendation,
)
from .feasibility import BatchValidationError
from .geography import CountyAdjacency
from .policy import BatchingPolicy, default_policy, policy_from_env

__all__ = [
    "BatchOptimizer",
    "BatchAction",
    "BatchAnalysis",
    "BatchExecution",
    "BatchRecommendation",
    "BatchValidationError",
    "BatchingPolicy",
    "CountyAdjacency",
    "default_policy",
    "policy_from_env",
]
