"""
Orders domain package.

Public API:
- Domain models: Order, CustomerContact, PackStatus, UrgencyLevel
- Parsing helpers: parse_date, parse_amount

The queue (orders.queue) and batching (orders.batching) are imported from their
own modules so this package stays importable from dispatch.scoring.
"""
from .models import (
    CustomerContact,
    InvalidOrderRecord,
    Order,
    PackStatus,
    UrgencyLevel,
    parse_amount,
    parse_date,
)

__all__ = [
    "Order",
    "CustomerContact",
    "InvalidOrderRecord",
    "PackStatus",
    "UrgencyLevel",
    "parse_date",
    "parse_amount",
]
