# tests/conftest.py
import os
import sys
import tempfile
from pathlib import Path
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

# ensure project root is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# the background sweep must never run during tests; it is exercised explicitly
from order_service import config as app_config  # noqa: E402
app_config.settings.SCHEDULER_ENABLED = False
app_config.settings.CORS_ORIGINS = "http://localhost:3000"

# the module-level DB (used by the app lifespan) gets its own scratch directory
from order_service import database as app_database  # noqa: E402
app_database.db.data_dir = Path(tempfile.mkdtemp(prefix="test_data_"))

from order_service.api.deps import get_db  # noqa: E402
from order_service.database import FileBackedDB  # noqa: E402
from order_service.main import app  # noqa: E402
from order_service.models.order import OrderStatus  # noqa: E402
from order_service.services.orders import OrderService  # noqa: E402


class TickingClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=None):
        self.current = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


# legal path from PENDING to each status
PATH_TO = {
    OrderStatus.PENDING: [],
    OrderStatus.PROCESSING: [OrderStatus.PROCESSING],
    OrderStatus.SHIPPED: [OrderStatus.PROCESSING, OrderStatus.SHIPPED],
    OrderStatus.DELIVERED: [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED],
    OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
}


@pytest.fixture
def db(tmp_path):
    """Isolated file-backed DB in a per-test temp directory."""
    return FileBackedDB(data_dir=tmp_path / "data", lock_timeout=5)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def service(db, clock):
    return OrderService(db, clock=clock)


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_order(service):
    """
    Create an order through the service and walk it to `status` via legal transitions.
    Usage: order = make_order(status=OrderStatus.SHIPPED)
    """
    def _fn(status=OrderStatus.PENDING, email="customer@example.com", items=None):
        if items is None:
            items = [{"product_name": "Widget", "quantity": 1, "unit_price": Decimal("10.00")}]
        order = service.create_order(email, items)
        for target in PATH_TO[status]:
            order = service.update_status(order.id, target)
        return order
    return _fn
