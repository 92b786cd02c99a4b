import pandas as pd
import numpy as np
from datetime import datetime, timezone, timedelta

COUNTIES = ["Greater London", "Surrey", "Kent", "Essex", "Manchester", "Leeds", "Bristol", "Glasgow"]
PRODUCTS = [
    ("WID-1001-A", "Widget Classic", "standard"),
    ("WID-1001-B", "Widget Classic XL", "standard"),
    ("SPK-2040-B", "Bluetooth Speaker", "electronics"),
    ("SPK-2040-W", "Bluetooth Speaker White", "electronics"),
    ("VAS-3300-G", "Glass Vase", "fragile"),
    ("KBL-4100-C", "Kettlebell 16kg", "heavy"),
    ("MUG-5000-R", "Ceramic Mug", "fragile"),
    ("CHG-6010-U", "USB-C Charger", "electronics"),
]


def generate_mock_orders(num_orders=500, output_file="orders_generated.csv", seed=42):
    """
    Generates a realistic warehouse order sheet designed to exercise scoring and batching.
    A small product catalogue and a handful of counties make sure plenty of orders share
    a SKU or a delivery area. A few rows are deliberately malformed.
    """
    rng = np.random.default_rng(seed)
    now = datetime.now(timezone.utc)

    data = []
    for order_index in range(num_orders):
        sku, product, category = PRODUCTS[rng.integers(0, len(PRODUCTS))]

        order_date = now - timedelta(hours=float(rng.uniform(0, 96)))
        expected_dispatch = order_date + timedelta(hours=float(rng.choice([12, 24, 48, 72])))
        delivery_by = expected_dispatch + timedelta(hours=float(rng.choice([12, 24, 48, 96])))

        data.append({
            "Order Number": f"ORD-{str(order_index + 1).zfill(6)}",
            "Order Date": order_date.strftime("%d/%m/%Y %H:%M"),
            "Expected Dispatch": expected_dispatch.isoformat(),
            "Delivery By": delivery_by.isoformat() if rng.random() > 0.1 else "",
            "Order Total": np.round(rng.lognormal(mean=4.5, sigma=1.0), 2),
            "SKU": sku,
            "Product": product,
            "Category": category,
            "Quantity": int(rng.integers(1, 5)),
            "County": COUNTIES[rng.integers(0, len(COUNTIES))],
            "Customer": f"Customer {rng.integers(1000, 9999)}",
            "Email": f"customer{order_index + 1}@example.com",
        })

    # a few bad rows: the loader and scorer must cope with them
    if num_orders >= 10:
        data[3]["Order Date"] = "not a date"
        data[7]["Order Total"] = "-12.50"

    df = pd.DataFrame(data)
    df.to_csv(output_file, index=False)
    print(f"✅ Generated {num_orders} orders and saved to '{output_file}'")

    print("\nTop 5 SKUs (Batching Potential):")
    counts = df["SKU"].value_counts().head(5)
    for sku, count in counts.items():
        print(f"  {sku}: {count} orders")


if __name__ == "__main__":
    generate_mock_orders(num_orders=500)
