from datetime import datetime, timezone

import numpy as np
import pandas as pd

from orders.loader import load_orders_csv, normalize_heading, orders_from_dataframe
from orders.models import PackStatus


def test_normalize_heading():
    assert normalize_heading("Order Number") == "ordernumber"
    assert normalize_heading("order_number") == "ordernumber"
    assert normalize_heading(" Expected-Dispatch ") == "expecteddispatch"


def test_dataframe_with_native_types():
    df = pd.DataFrame({
        "Order Number": ["A-1", "A-2"],
        "Order Date": [pd.Timestamp("2025-03-09 08:00"), pd.NaT],
        "Dispatch By": [pd.Timestamp("2025-03-11 17:00", tz="UTC"), pd.Timestamp("2025-03-12", tz="UTC")],
        "Total": [np.float64(129.99), np.nan],
        "Qty": [np.int64(2), np.int64(1)],
        "County": ["Kent", None],
        "Unused": ["x", "y"],
    })

    first, second = orders_from_dataframe(df)

    assert first.order_number == "A-1"
    assert first.order_date == datetime(2025, 3, 9, 8, 0, tzinfo=timezone.utc)
    assert first.expected_dispatch == datetime(2025, 3, 11, 17, 0, tzinfo=timezone.utc)
    assert first.order_total == 129.99
    assert first.quantity == 2
    assert first.county == "Kent"
    assert first.data_issues == []

    assert second.order_date is None
    assert second.order_total is None
    assert second.county is None
    assert "orderDate missing" in second.data_issues
    assert "orderTotal missing" in second.data_issues


def test_rows_without_order_number_are_skipped():
    df = pd.DataFrame({"orderNumber": ["A-1", None, "  "], "orderTotal": ["10", "20", "30"]})
    orders = orders_from_dataframe(df)
    assert [o.order_number for o in orders] == ["A-1"]


def test_first_matching_column_wins():
    df = pd.DataFrame({"Total": ["10"], "Value": ["99"], "Order No": ["A-1"]})
    (order,) = orders_from_dataframe(df)
    assert order.order_total == 10


def test_load_csv(tmp_path):
    path = tmp_path / "orders.csv"
    path.write_text(
        "Order Number,Order Date,Expected Dispatch,Delivery By,Order Total,SKU,Product,Category,Quantity,County,Customer,Email,Status\n"
        "ORD-1,09/03/2025 08:30,2025-03-11T17:00:00Z,12/03/2025,\"£1,200.50\",SKU-1,Desk Lamp,electronics,1,Kent,Sam,sam@example.com,picking\n"
        "ORD-2,yesterday,2025-03-11,,abc,,,,0,,,,overdue\n"
        ",09/03/2025,2025-03-11,,10,,,,1,,,,\n",
        encoding="utf-8",
    )

    orders = load_orders_csv(path)

    assert [o.order_number for o in orders] == ["ORD-1", "ORD-2"]
    lamp, broken = orders

    assert lamp.order_date == datetime(2025, 3, 9, 8, 30, tzinfo=timezone.utc)
    assert lamp.delivery_by == datetime(2025, 3, 12, tzinfo=timezone.utc)
    assert lamp.order_total == 1200.5
    assert lamp.category == "electronics"
    assert lamp.customer.email == "sam@example.com"
    assert lamp.status == PackStatus.PICKING

    assert broken.order_date is None
    assert broken.order_total is None
    assert broken.quantity == 1
    assert broken.status == PackStatus.PENDING
    assert any(i.startswith("orderDate unparseable") for i in broken.data_issues)
    assert any(i.startswith("orderTotal unparseable") for i in broken.data_issues)
    assert any(i.startswith("quantity invalid") for i in broken.data_issues)
