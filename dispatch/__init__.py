#Expose the high-level dispatch pieces:
#Priority scoring (DPS) and its policy
#Lifecycle events
#Pack workflow tracker (the "what is being packed right now" state)

from .scoring import calculate_dps, ranking_key, score_breakdown, urgency_level
from .policy import ScoringPolicy, default_scoring_policy, scoring_policy_from_env
from .events import DispatchEvent, EventBus
from .pack_workflow import PackSession, PackSessionTracker

__all__ = [
    "calculate_dps",
    "score_breakdown",
    "urgency_level",
    "ranking_key",
    "ScoringPolicy",
    "default_scoring_policy",
    "scoring_policy_from_env",
    "DispatchEvent",
    "EventBus",
    "PackSession",
    "PackSessionTracker",
]
