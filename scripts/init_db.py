"""Creates the data directory with empty order tables, optionally seeded with sample orders.

    python scripts/init_db.py          # empty tables
    python scripts/init_db.py --seed   # plus one sample order per status
"""
import argparse
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from order_service.database import db  # noqa: E402
from order_service.models.order import OrderStatus  # noqa: E402
from order_service.services.orders import OrderService  # noqa: E402

TABLE_COLUMNS = {
    "orders": ["id", "status", "customer_email", "total_amount", "created_at", "updated_at", "version"],
    "order_items": ["id", "order_id", "position", "product_name", "quantity", "unit_price"],
}

# status each sample order is walked to, via legal transitions only
SAMPLE_ORDERS = [
    ("john.doe@example.com", [("MacBook Pro 16", 1, "2499.99"), ("USB-C Cable", 2, "24.99")], []),
    ("jane.smith@example.com", [("Dell XPS 15 Laptop", 1, "1799.99"), ("Laptop Bag", 1, "99.99")],
     [OrderStatus.PROCESSING]),
    ("bob.johnson@example.com", [("iPhone 15 Pro", 1, "1199.99"), ("AirPods Pro", 1, "249.99"),
                                 ("iPhone Case", 2, "49.99"), ("Screen Protector", 3, "29.99"),
                                 ("Lightning Cable", 5, "19.99")],
     [OrderStatus.PROCESSING, OrderStatus.SHIPPED]),
    ("alice.williams@example.com", [("Samsung Galaxy Tab", 1, "699.99"), ("Tablet Stand", 1, "49.99"),
                                    ("Stylus Pen", 1, "149.99")],
     [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]),
    ("charlie.brown@example.com", [("Mechanical Keyboard", 1, "159.99")], [OrderStatus.CANCELLED]),
]


def create_tables() -> None:
    for table, columns in TABLE_COLUMNS.items():
        path = db._file_path(table)
        if path.exists():
            print(f"{path} already exists")
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(columns=columns).to_csv(path, index=False)
        print(f"Created {path}")


def seed() -> None:
    service = OrderService(db)
    for email, items, path in SAMPLE_ORDERS:
        order = service.create_order(
            email, [{"product_name": n, "quantity": q, "unit_price": p} for n, q, p in items])
        for target in path:
            order = service.update_status(order.id, target)
        print(f"Seeded order {order.id} ({order.status.value}, total {order.total_amount})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", action="store_true", help="insert sample orders")
    args = parser.parse_args()
    create_tables()
    if args.seed:
        seed()
