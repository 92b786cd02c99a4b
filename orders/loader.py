"""
Purpose: Turn an uploaded order sheet (CSV / DataFrame) into Order objects.
What it does:
- Maps the common column headings ("Order Number", "orderNumber", "order_number", ...) onto Order fields
- Converts pandas/numpy missing values and scalars to plain Python
- Skips rows with no order number (logged), keeps everything else and lets
  Order.from_record note any data issues

Rule: Ingestion only. Nothing here scores or validates business rules.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import pandas as pd

from .models import InvalidOrderRecord, Order

logger = logging.getLogger(__name__)

# normalized heading (lowercase, alphanumerics only) -> Order.from_record key
_HEADINGS: Dict[str, str] = {
    "ordernumber": "order_number",
    "orderno": "order_number",
    "orderid": "order_number",
    "orderdate": "order_date",
    "expecteddispatch": "expected_dispatch",
    "dispatchby": "expected_dispatch",
    "dispatchdate": "expected_dispatch",
    "deliveryby": "delivery_by",
    "deliverydate": "delivery_by",
    "deliveryenddate": "delivery_by",
    "ordertotal": "order_total",
    "total": "order_total",
    "value": "order_total",
    "sku": "sku",
    "product": "product",
    "productname": "product",
    "category": "category",
    "quantity": "quantity",
    "qty": "quantity",
    "county": "county",
    "region": "county",
    "customer": "customer_name",
    "customername": "customer_name",
    "email": "email",
    "customeremail": "email",
    "phone": "phone",
    "customerphone": "phone",
    "status": "status",
}


def normalize_heading(heading: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(heading).lower())


def orders_from_dataframe(df: pd.DataFrame) -> List[Order]:
    renames = {}
    for column in df.columns:
        key = _HEADINGS.get(normalize_heading(column))
        if key and key not in renames.values():
            renames[column] = key
    frame = df[list(renames)].rename(columns=renames)

    orders: List[Order] = []
    skipped = 0
    for row_number, row in enumerate(frame.to_dict(orient="records"), start=1):
        record = {k: _plain(v) for k, v in row.items()}
        try:
            order = Order.from_record(record)
        except InvalidOrderRecord:
            skipped += 1
            logger.warning(f"Row {row_number} skipped: no order number")
            continue
        if order.data_issues:
            logger.warning(f"Order {order.order_number} has data issues: {'; '.join(order.data_issues)}")
        orders.append(order)

    logger.info(f"Loaded {len(orders)} orders ({skipped} rows skipped)")
    return orders


def load_orders_csv(path: Union[str, Path]) -> List[Order]:
    # read everything as text; Order.from_record owns date and amount parsing
    df = pd.read_csv(path, dtype=str)
    return orders_from_dataframe(df)


def _plain(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value
