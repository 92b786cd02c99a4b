"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines the canonical normalized Order used by scoring, queueing, batching and pack tracking.
- Normalizes raw upload records ONCE at ingestion (Order.from_record):
   - dates: ISO-8601 or UK day-first DD/MM/YYYY
   - amounts: numbers or strings like "£1,250.00"
   - anything malformed is left as None and noted in order.data_issues

Defines enums/constants:
- PackStatus = PENDING | PICKING | PACKING | PACKED | DISPATCHED
- UrgencyLevel = CRITICAL | HIGH | MEDIUM | LOW | NORMAL

Rule: No scoring, no batching logic. Models + normalization only.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class PackStatus(str, Enum):
    PENDING = "pending"
    PICKING = "picking"
    PACKING = "packing"
    PACKED = "packed"
    DISPATCHED = "dispatched"


class UrgencyLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NORMAL = "normal"


class InvalidOrderRecord(ValueError):
    """Raised when a raw record cannot become an Order at all (no identity)."""
    pass


# DD/MM/YYYY with an optional " HH:MM" or " HH:MM:SS" suffix
_UK_DATE = re.compile(
    r"^(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})"
    r"(?:[ T](?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?)?$"
)
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse an upload timestamp into an aware UTC datetime.

    Accepts datetime/date objects, ISO-8601 strings (a trailing "Z" is allowed)
    and UK day-first "DD/MM/YYYY[ HH:MM[:SS]]" strings. Naive values are taken as UTC.

    Returns None for anything else, including impossible calendar dates,
    so a garbage string can never turn into a silently wrong date.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_date_string(text)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_date_string(text: str) -> Optional[datetime]:
    uk = _UK_DATE.match(text)
    if uk:
        try:
            return datetime(
                int(uk.group("year")),
                int(uk.group("month")),
                int(uk.group("day")),
                int(uk.group("hour") or 0),
                int(uk.group("minute") or 0),
                int(uk.group("second") or 0),
            )
        except ValueError:
            return None

    # only hand full ISO-looking strings to fromisoformat; it is lenient about
    # compact forms ("20250101") that an upload should never contain
    if not _ISO_PREFIX.match(text):
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a currency amount (GBP). Tolerates a leading "£" and thousands separators.
    Returns None when the value is missing or not a number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "").replace("£", "")
        if not text:
            return None
        try:
            amount = float(text)
        except ValueError:
            return None
    else:
        return None

    # NaN/inf never compare sensibly in the step tables
    if amount != amount or amount in (float("inf"), float("-inf")):
        return None
    return amount


# Raw upload keys (camelCase from the browser/CSV layer) -> Order field names
_FIELD_ALIASES: Dict[str, tuple] = {
    "order_number": ("orderNumber", "order_number", "orderId", "order_id"),
    "order_date": ("orderDate", "order_date"),
    "expected_dispatch": ("expectedDispatch", "expected_dispatch", "dispatchBy"),
    "delivery_by": ("deliveryBy", "delivery_by", "deliveryDate", "deliveryEndDate"),
    "order_total": ("orderTotal", "order_total", "value", "total"),
    "sku": ("sku", "SKU"),
    "product": ("product", "productName", "product_name"),
    "category": ("category",),
    "quantity": ("quantity", "qty"),
    "county": ("county", "region"),
    "customer_name": ("customer", "customerName", "customer_name"),
    "email": ("email", "customerEmail"),
    "phone": ("phone", "customerPhone"),
    "status": ("status",),
}


def _pick(record: Mapping[str, Any], canonical: str) -> Any:
    for key in _FIELD_ALIASES[canonical]:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class CustomerContact:
    """
    Contact details carried for tracking/UI only. Never used for scoring.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class Order:
    """
    A single normalized warehouse order.

    Required for scoring: order_number, order_date, expected_dispatch, order_total.
    A None in any of those means "missing or unparseable" and scores 0.

    Derived fields (dps_score, is_overdue, urgency_level, last_dps_calculation)
    are owned by the queue and rewritten on every recompute.
    """

    order_number: str
    order_date: Optional[datetime] = None
    expected_dispatch: Optional[datetime] = None
    order_total: Optional[float] = None

    delivery_by: Optional[datetime] = None

    # fulfillment
    sku: Optional[str] = None
    product: Optional[str] = None
    category: Optional[str] = None
    quantity: int = 1
    county: Optional[str] = None
    customer: CustomerContact = field(default_factory=CustomerContact)

    status: PackStatus = PackStatus.PENDING

    # derived (queue-owned)
    dps_score: Optional[float] = None
    is_overdue: bool = False
    urgency_level: Optional[UrgencyLevel] = None
    last_dps_calculation: Optional[datetime] = None

    # ingestion notes, e.g. "orderDate unparseable: 'yesterday'"
    data_issues: List[str] = field(default_factory=list)

    @property
    def value(self) -> float:
        """Order total for comparisons; missing or negative totals count as zero."""
        if self.order_total is None or self.order_total < 0:
            return 0.0
        return self.order_total

    @property
    def item_key(self) -> Optional[str]:
        return self.sku or self.product

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Order:
        """
        Build an Order from a raw upload record (camelCase or snake_case keys).

        Raises InvalidOrderRecord only when the record has no order number.
        Every other defect is tolerated and listed in data_issues.
        """
        order_number = _clean_text(_pick(record, "order_number"))
        if not order_number:
            raise InvalidOrderRecord("record has no order number")

        issues: List[str] = []

        def date_field(canonical: str, label: str, required: bool) -> Optional[datetime]:
            raw = _pick(record, canonical)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                if required:
                    issues.append(f"{label} missing")
                return None
            parsed = parse_date(raw)
            if parsed is None:
                issues.append(f"{label} unparseable: {raw!r}")
            return parsed

        order_date = date_field("order_date", "orderDate", True)
        expected_dispatch = date_field("expected_dispatch", "expectedDispatch", True)
        delivery_by = date_field("delivery_by", "deliveryBy", False)

        raw_total = _pick(record, "order_total")
        order_total = parse_amount(raw_total)
        if raw_total is None:
            issues.append("orderTotal missing")
        elif order_total is None:
            issues.append(f"orderTotal unparseable: {raw_total!r}")
        elif order_total < 0:
            issues.append(f"orderTotal negative: {order_total}")

        quantity = 1
        raw_quantity = _pick(record, "quantity")
        if raw_quantity is not None:
            parsed_quantity = parse_amount(raw_quantity)
            if parsed_quantity is None or parsed_quantity < 1:
                issues.append(f"quantity invalid: {raw_quantity!r}")
            else:
                quantity = int(parsed_quantity)

        status = PackStatus.PENDING
        raw_status = _clean_text(_pick(record, "status"))
        if raw_status:
            try:
                status = PackStatus(raw_status.lower())
            except ValueError:
                # upload statuses like "overdue" are display labels, not workflow states
                pass

        return cls(
            order_number=order_number,
            order_date=order_date,
            expected_dispatch=expected_dispatch,
            order_total=order_total,
            delivery_by=delivery_by,
            sku=_clean_text(_pick(record, "sku")),
            product=_clean_text(_pick(record, "product")),
            category=_clean_text(_pick(record, "category")),
            quantity=quantity,
            county=_clean_text(_pick(record, "county")),
            customer=CustomerContact(
                name=_clean_text(_pick(record, "customer_name")),
                email=_clean_text(_pick(record, "email")),
                phone=_clean_text(_pick(record, "phone")),
            ),
            status=status,
            data_issues=issues,
        )

    def to_dict(self) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "order_number": self.order_number,
            "order_date": iso(self.order_date),
            "expected_dispatch": iso(self.expected_dispatch),
            "delivery_by": iso(self.delivery_by),
            "order_total": self.order_total,
            "sku": self.sku,
            "product": self.product,
            "category": self.category,
            "quantity": self.quantity,
            "county": self.county,
            "customer": {
                "name": self.customer.name,
                "email": self.customer.email,
                "phone": self.customer.phone,
            },
            "status": self.status.value,
            "dps_score": self.dps_score,
            "is_overdue": self.is_overdue,
            "urgency_level": self.urgency_level.value if self.urgency_level else None,
            "last_dps_calculation": iso(self.last_dps_calculation),
            "data_issues": list(self.data_issues),
        }
