from .pack_state import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    OrderNotFoundError,
    PackWorkflowError,
    SessionAlreadyActiveError,
    SessionNotFoundError,
    is_valid_transition,
)

__all__ = [
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "PackWorkflowError",
    "InvalidTransitionError",
    "SessionAlreadyActiveError",
    "SessionNotFoundError",
    "OrderNotFoundError",
]
