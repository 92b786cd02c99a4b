from typing import Dict, FrozenSet, Union

from orders.models import PackStatus


class PackWorkflowError(Exception):
    """Base class for pack workflow misuse (never raised for bad order data)."""
    pass


class InvalidTransitionError(PackWorkflowError):
    """Raised when a pack status change is not in VALID_TRANSITIONS."""
    pass


class SessionAlreadyActiveError(PackWorkflowError):
    """Raised when a pack session is started for an order that already has one."""
    pass


class SessionNotFoundError(PackWorkflowError, LookupError):
    """Raised when updating an order that has no active pack session."""
    pass


class OrderNotFoundError(PackWorkflowError, LookupError):
    """Raised when the order number is unknown to the order lookup."""
    pass


VALID_TRANSITIONS: Dict[PackStatus, FrozenSet[PackStatus]] = {
    PackStatus.PENDING: frozenset({PackStatus.PICKING}),
    PackStatus.PICKING: frozenset({PackStatus.PACKING, PackStatus.PENDING}),
    PackStatus.PACKING: frozenset({PackStatus.PACKED, PackStatus.PICKING}),
    PackStatus.PACKED: frozenset({PackStatus.DISPATCHED}),
    PackStatus.DISPATCHED: frozenset(),
}


def to_pack_status(value: Union[PackStatus, str]) -> PackStatus:
    """
    Accept a PackStatus or its string value ("packing", "PACKING").
    """
    if isinstance(value, PackStatus):
        return value
    try:
        return PackStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidTransitionError(f"Unknown pack status: {value!r}") from None


def is_valid_transition(current: Union[PackStatus, str], new: Union[PackStatus, str]) -> bool:
    return to_pack_status(new) in VALID_TRANSITIONS[to_pack_status(current)]


def ensure_transition(order_number: str, current: PackStatus, new: PackStatus) -> None:
    if new not in VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Invalid state transition for order {order_number}: {current.value} -> {new.value}"
        )
