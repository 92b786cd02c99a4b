from datetime import datetime, timedelta, timezone

import pytest

from orders.models import CustomerContact, Order

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_order():
    """
    Factory for scoreable orders described relative to NOW (all offsets in hours).
    """
    def _make(
        order_number="ORD-1",
        *,
        age_hours=10.0,
        dispatch_in_hours=30.0,
        delivery_window_hours=None,
        total=100.0,
        sku="SKU-100",
        product="Widget",
        category="standard",
        quantity=1,
        county="Greater London",
        customer="Sam Customer",
    ):
        order_date = NOW - timedelta(hours=age_hours)
        delivery_by = None
        if delivery_window_hours is not None:
            delivery_by = order_date + timedelta(hours=delivery_window_hours)
        return Order(
            order_number=order_number,
            order_date=order_date,
            expected_dispatch=NOW + timedelta(hours=dispatch_in_hours),
            order_total=total,
            delivery_by=delivery_by,
            sku=sku,
            product=product,
            category=category,
            quantity=quantity,
            county=county,
            customer=CustomerContact(name=customer),
        )

    return _make
