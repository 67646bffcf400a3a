"""
Order lifecycle service: the only component that creates or mutates orders.

Every mutation runs its read-check-write while holding the orders table lock and
finishes with a conditional update on (status, version), so two callers racing on
the same order cannot both apply a transition from the same stale read.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from order_service.config import settings
from order_service.core.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from order_service.database import FileBackedDB
from order_service.models.order import MONEY_QUANT, Order, OrderItem, OrderStatus, to_decimal

logger = logging.getLogger(__name__)

ORDERS = "orders"
ORDER_ITEMS = "order_items"

# pagination contract (1-indexed at this boundary)
DEFAULT_PAGE = 1
DEFAULT_SIZE = 10
MIN_PAGE, MAX_PAGE = 1, 1000
MIN_SIZE, MAX_SIZE = 1, 100

# item field limits
MAX_PRODUCT_NAME = 200
MIN_QUANTITY, MAX_QUANTITY = 1, 1000
MIN_UNIT_PRICE, MAX_UNIT_PRICE = Decimal("0.01"), Decimal("1000000.00")
MAX_EMAIL = 255
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ItemInput = Union[OrderItem, Dict[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: Optional[int], low: int, high: int, default: int) -> int:
    if value is None:
        return default
    return max(low, min(int(value), high))


@dataclass
class Page:
    content: List[Order] = field(default_factory=list)
    page_number: int = DEFAULT_PAGE
    page_size: int = DEFAULT_SIZE
    total_elements: int = 0
    total_pages: int = 0


class OrderService:
    def __init__(self, db: FileBackedDB, clock: Callable[[], datetime] = _utcnow,
                 high_failure_rate: Optional[float] = None):
        self.db = db
        self.clock = clock
        self.high_failure_rate = (settings.HIGH_FAILURE_RATE_THRESHOLD
                                  if high_failure_rate is None else float(high_failure_rate))

    # --- create / read ---

    def create_order(self, customer_email: str, items: Optional[Iterable[ItemInput]]) -> Order:
        items = list(items or [])
        logger.info("Creating order for customer: %s with %d items", customer_email, len(items))

        if not items:
            raise OrderValidationError.empty_order()
        email = _validate_email(customer_email)
        order_items = [_validate_item(it, idx) for idx, it in enumerate(items)]

        order = Order.new(email, order_items, now=self.clock())
        if order.total_amount <= 0:
            raise OrderValidationError.invalid_total(order.total_amount)

        row, item_rows = self.db.create_with_children(
            ORDERS,
            order.to_row(),
            ORDER_ITEMS,
            [it.to_row(order_id="", position=pos) for pos, it in enumerate(order.items)],
            fk_field="order_id",
        )
        saved = Order.from_row(row, item_rows)
        logger.info("Order created successfully - ID: %s, Total: %s, Status: %s",
                    saved.id, saved.total_amount, saved.status.value)
        return saved

    def get_order(self, order_id: str) -> Order:
        logger.debug("Fetching order with ID: %s", order_id)
        row = self.db.get_record(ORDERS, "id", order_id)
        if not row:
            raise OrderNotFoundError(order_id)
        order = Order.from_row(row)
        order.items = self._items_for(order_id)
        return order

    def list_orders(self, status: Optional[Union[OrderStatus, str]] = None, page: Optional[int] = DEFAULT_PAGE,
                    size: Optional[int] = DEFAULT_SIZE) -> Page:
        """
        Newest-first page of orders, optionally restricted to one status.
        Out-of-range page/size values are clamped, never rejected.
        """
        page = clamp(page, MIN_PAGE, MAX_PAGE, DEFAULT_PAGE)
        size = clamp(size, MIN_SIZE, MAX_SIZE, DEFAULT_SIZE)
        where = {}
        if status is not None and status != "":
            where["status"] = _parse_status(status, field_name="status").value
        logger.debug("Fetching orders - Page: %d, Size: %d, Status: %s", page, size, where.get("status"))

        rows, total = self.db.query_page(ORDERS, where=where, order_by="created_at", descending=True,
                                         offset=(page - 1) * size, limit=size)
        items_by_order: Dict[str, List[Dict[str, Any]]] = {}
        for item_row in self.db.find_records(ORDER_ITEMS, "order_id", [r["id"] for r in rows]):
            items_by_order.setdefault(item_row["order_id"], []).append(item_row)

        content = [Order.from_row(r, items_by_order.get(r["id"], [])) for r in rows]
        total_pages = -(-total // size)
        logger.debug("Found %d orders (page %d of %d)", len(content), page, total_pages)
        return Page(content=content, page_number=page, page_size=size,
                    total_elements=total, total_pages=total_pages)

    # --- mutations ---

    def cancel_order(self, order_id: str) -> Order:
        logger.info("Attempting to cancel order with ID: %s", order_id)

        def _cancel(order: Order) -> None:
            if not order.can_be_cancelled():
                logger.warning("Cannot cancel order %s - Current status: %s", order_id, order.status.value)
                raise InvalidTransitionError.cannot_cancel(order.status)
            order.cancel(self.clock())

        order = self._mutate(order_id, _cancel)
        logger.info("Order %s cancelled successfully", order_id)
        return order

    def update_status(self, order_id: str, target: Union[OrderStatus, str]) -> Order:
        new_status = _parse_status(target, field_name="status")
        logger.info("Updating order %s to status: %s", order_id, new_status.value)
        previous_status: Optional[OrderStatus] = None

        def _transition(order: Order) -> None:
            nonlocal previous_status
            previous_status = order.status
            if not order.can_transition_to(new_status):
                logger.warning("Invalid status transition for order %s from %s to %s",
                               order_id, order.status.value, new_status.value)
                raise InvalidTransitionError.invalid_transition(order.status, new_status)
            order.transition_to(new_status, self.clock())

        order = self._mutate(order_id, _transition)
        logger.info("Order %s status updated from %s to %s", order_id, previous_status.value, new_status.value)
        return order

    def promote_pending_to_processing(self) -> int:
        """
        Best-effort sweep of every PENDING order into PROCESSING.

        Each order is promoted on its own; a failure is logged and counted and the
        sweep continues. Orders that fail stay PENDING and are retried next run.
        Returns the number of orders promoted.
        """
        started = time.monotonic()
        logger.info("Starting promotion of PENDING orders to PROCESSING")

        pending, _ = self.db.query_page(ORDERS, where={"status": OrderStatus.PENDING.value}, order_by="created_at")
        if not pending:
            logger.info("No PENDING orders found to promote")
            return 0
        logger.info("Found %d PENDING orders to promote", len(pending))

        success = failed = skipped = 0
        for row in pending:
            order_id = row.get("id")
            try:
                if self._promote_one(row):
                    success += 1
                    logger.debug("Promoted order %s to PROCESSING", order_id)
                else:
                    skipped += 1
            except Exception as exc:
                failed += 1
                logger.error("Failed to promote order %s to PROCESSING - Error: %s", order_id, exc, exc_info=True)

        duration_ms = (time.monotonic() - started) * 1000
        logger.info("Promotion completed - Success: %d, Failed: %d, Skipped: %d, Duration: %.0fms",
                    success, failed, skipped, duration_ms)

        failure_rate = failed / len(pending)
        if failed and failure_rate > self.high_failure_rate:
            logger.error("HIGH FAILURE RATE in order promotion: %d/%d failed (%.2f%%)",
                         failed, len(pending), failure_rate * 100)
        return success

    # --- internals ---

    def _promote_one(self, row: Dict[str, Any]) -> bool:
        order_id = row["id"]
        with self.db.transaction(ORDERS):
            current = self.db.get_record(ORDERS, "id", order_id)
            if (current is None or current.get("status") != OrderStatus.PENDING.value
                    or str(current.get("version")) != str(row.get("version"))):
                logger.debug("Order %s left PENDING since it was fetched; skipping", order_id)
                return False
            order = Order.from_row(current)
            prev_status, prev_version = order.status, order.version
            order.transition_to(OrderStatus.PROCESSING, self.clock(), expected_version=prev_version)
            self._write_transition(order, prev_status, prev_version)
        return True

    def _mutate(self, order_id: str, action: Callable[[Order], None]) -> Order:
        """Run `action` against the current state of one order and persist the result atomically."""
        with self.db.transaction(ORDERS):
            row = self.db.get_record(ORDERS, "id", order_id)
            if not row:
                raise OrderNotFoundError(order_id)
            order = Order.from_row(row)
            prev_status, prev_version = order.status, order.version
            action(order)
            self._write_transition(order, prev_status, prev_version)
            order.items = self._items_for(order_id)
        return order

    def _items_for(self, order_id: str) -> List[OrderItem]:
        rows = self.db.find_records(ORDER_ITEMS, "order_id", [order_id])
        return [OrderItem.from_dict(r) for r in sorted(rows, key=lambda r: int(r.get("position") or 0))]

    def _write_transition(self, order: Order, prev_status: OrderStatus, prev_version: int) -> None:
        row = order.to_row()
        updated = self.db.update_record(
            ORDERS, "id", order.id,
            {"status": row["status"], "updated_at": row["updated_at"], "version": row["version"]},
            expected={"status": prev_status.value, "version": prev_version},
        )
        if updated is None:
            raise OrderNotFoundError(order.id)


def _parse_status(value: Union[OrderStatus, str], field_name: str) -> OrderStatus:
    try:
        return OrderStatus.parse(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise OrderValidationError.field_constraint(
            field_name, value, f"Unknown order status '{value}'. Expected one of: {allowed}")


def _validate_email(email: Any) -> str:
    if not isinstance(email, str) or not email.strip():
        raise OrderValidationError.field_constraint("customer_email", email, "Customer email is required")
    email = email.strip()
    if len(email) > MAX_EMAIL:
        raise OrderValidationError.field_constraint(
            "customer_email", email, f"Customer email must not exceed {MAX_EMAIL} characters")
    if not _EMAIL_RE.match(email):
        raise OrderValidationError.field_constraint("customer_email", email, "Customer email must be valid")
    return email


def _validate_item(raw: ItemInput, idx: int) -> OrderItem:
    prefix = f"items[{idx}]"
    if isinstance(raw, OrderItem):
        name, quantity, price = raw.product_name, raw.quantity, raw.unit_price
    elif isinstance(raw, dict):
        name, quantity, price = raw.get("product_name"), raw.get("quantity"), raw.get("unit_price")
    else:
        raise OrderValidationError.field_constraint(prefix, raw, "Order item must be an object")

    if not isinstance(name, str) or not name.strip():
        raise OrderValidationError.field_constraint(f"{prefix}.product_name", name, "Product name is required")
    if len(name) > MAX_PRODUCT_NAME:
        raise OrderValidationError.field_constraint(
            f"{prefix}.product_name", name, f"Product name must be between 1 and {MAX_PRODUCT_NAME} characters")

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise OrderValidationError.field_constraint(f"{prefix}.quantity", quantity, "Quantity must be an integer")
    if not MIN_QUANTITY <= quantity <= MAX_QUANTITY:
        raise OrderValidationError.field_constraint(
            f"{prefix}.quantity", quantity, f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}")

    try:
        price = to_decimal(price)
    except ValueError:
        raise OrderValidationError.field_constraint(f"{prefix}.unit_price", price, "Price must be a decimal amount")
    if not price.is_finite() or not MIN_UNIT_PRICE <= price <= MAX_UNIT_PRICE:
        raise OrderValidationError.field_constraint(
            f"{prefix}.unit_price", price, f"Price must be between {MIN_UNIT_PRICE} and {MAX_UNIT_PRICE}")
    if price != price.quantize(MONEY_QUANT):
        raise OrderValidationError.field_constraint(
            f"{prefix}.unit_price", price, "Price must have at most 2 decimal places")
    price = price.quantize(MONEY_QUANT)

    return OrderItem(product_name=name, quantity=quantity, unit_price=price)
