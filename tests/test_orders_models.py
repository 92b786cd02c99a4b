from datetime import datetime, timezone

import pytest

from orders.models import InvalidOrderRecord, Order, PackStatus, parse_amount, parse_date


def test_parse_date_iso_with_z_is_utc():
    parsed = parse_date("2025-03-10T12:00:00Z")
    assert parsed == datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_parse_date_iso_offset_converted_to_utc():
    parsed = parse_date("2025-03-10T14:00:00+02:00")
    assert parsed == datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_parse_date_uk_day_first():
    assert parse_date("10/03/2025") == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert parse_date("01/12/2025 14:30") == datetime(2025, 12, 1, 14, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("garbage", ["31/02/2025", "yesterday", "2025-13-01", "20250101", "", "  ", None, 12345])
def test_parse_date_rejects_garbage(garbage):
    assert parse_date(garbage) is None


def test_parse_date_naive_datetime_taken_as_utc():
    assert parse_date(datetime(2025, 1, 1, 9, 0)).tzinfo == timezone.utc


def test_parse_amount_handles_currency_text():
    assert parse_amount("£1,250.50") == 1250.50
    assert parse_amount(42) == 42.0
    assert parse_amount("abc") is None
    assert parse_amount(float("nan")) is None
    assert parse_amount(True) is None


def test_from_record_camel_case():
    order = Order.from_record({
        "orderNumber": "A-1",
        "orderDate": "09/03/2025 10:00",
        "expectedDispatch": "2025-03-11T10:00:00Z",
        "deliveryBy": "2025-03-12",
        "orderTotal": "£99.99",
        "sku": "SKU-1",
        "product": "Lamp",
        "quantity": "3",
        "county": "Kent",
        "customer": "Jo Bloggs",
        "email": "jo@example.com",
        "status": "PACKING",
    })

    assert order.order_number == "A-1"
    assert order.order_date == datetime(2025, 3, 9, 10, 0, tzinfo=timezone.utc)
    assert order.order_total == 99.99
    assert order.quantity == 3
    assert order.customer.name == "Jo Bloggs"
    assert order.status == PackStatus.PACKING
    assert order.data_issues == []


def test_from_record_records_issues_instead_of_raising():
    order = Order.from_record({
        "order_number": "A-2",
        "order_date": "not a date",
        "order_total": "-5",
        "quantity": "zero",
        "status": "overdue",
    })

    assert order.order_date is None
    assert order.expected_dispatch is None
    assert order.order_total == -5.0
    assert order.value == 0.0
    assert order.quantity == 1
    assert order.status == PackStatus.PENDING
    assert any("orderDate unparseable" in i for i in order.data_issues)
    assert "expectedDispatch missing" in order.data_issues
    assert any("negative" in i for i in order.data_issues)
    assert any("quantity invalid" in i for i in order.data_issues)


def test_from_record_without_order_number_raises():
    with pytest.raises(InvalidOrderRecord):
        Order.from_record({"orderDate": "2025-03-10"})


def test_item_key_prefers_sku():
    assert Order("X", sku="S1", product="P").item_key == "S1"
    assert Order("X", product="P").item_key == "P"
    assert Order("X").item_key is None


def test_to_dict_is_json_friendly(make_order):
    row = make_order("J-1").to_dict()
    assert row["order_number"] == "J-1"
    assert isinstance(row["order_date"], str)
    assert row["status"] == "pending"
