# order_service/models/order.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from order_service.core.errors import InvalidTransitionError
from order_service.core.state_machine import StateMachine, freeze


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        return cls(str(value or "").strip().upper())


# allowed transitions map; DELIVERED and CANCELLED are terminal
ALLOWED_TRANSITIONS = freeze({
    OrderStatus.PENDING: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED, OrderStatus.CANCELLED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
})

MONEY_QUANT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert a persisted/raw value to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # floats only reach here from careless callers; go through repr to avoid binary noise
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def compute_total(items: Iterable["OrderItem"]) -> Decimal:
    """Sum of quantity x unit_price over `items`, in exact decimal arithmetic."""
    total = Decimal("0")
    for it in items:
        total += it.subtotal
    return total.quantize(MONEY_QUANT)


def _parse_ts(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


def _format_ts(ts: Optional[datetime]) -> str:
    if ts is None:
        return ""
    # fixed width so timestamps sort lexicographically in the CSV
    return ts.isoformat(timespec="microseconds")


@dataclass
class OrderItem:
    product_name: str
    quantity: int
    unit_price: Decimal
    id: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * int(self.quantity)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OrderItem":
        return cls(
            id=d.get("id") or None,
            product_name=str(d.get("product_name") or ""),
            quantity=int(d.get("quantity")),
            unit_price=to_decimal(d.get("unit_price")),
        )

    def to_row(self, order_id: str, position: int) -> Dict[str, Any]:
        return {
            "id": self.id or "",
            "order_id": order_id,
            "position": int(position),
            "product_name": self.product_name,
            "quantity": int(self.quantity),
            "unit_price": str(self.unit_price),
        }


@dataclass
class Order:
    """
    Order aggregate. Owns its items by value; items have no lifecycle of their own.
    `total_amount` is fixed at creation from the items and never edited afterwards.
    """
    customer_email: str
    items: List[OrderItem] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # optimistic concurrency control
    version: int = 0

    @classmethod
    def new(cls, customer_email: str, items: List[OrderItem], now: datetime) -> "Order":
        """Creation path: status is always PENDING and the total is derived from the items."""
        return cls(
            customer_email=customer_email,
            items=list(items),
            total_amount=compute_total(items),
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            version=0,
        )

    def can_be_cancelled(self) -> bool:
        return self.status == OrderStatus.PENDING

    def can_transition_to(self, target: OrderStatus) -> bool:
        return self._make_state_machine().can_transition(target)

    def _make_state_machine(self) -> StateMachine:
        return StateMachine(state=self.status, allowed_transitions=ALLOWED_TRANSITIONS, version=self.version)

    def transition_to(self, new_status: OrderStatus, now: datetime, expected_version: Optional[int] = None) -> None:
        """
        Move to `new_status`. Raises InvalidTransitionError (or ConcurrentModificationError
        when `expected_version` is stale). On success bumps version and refreshes updated_at.
        """
        sm = self._make_state_machine()
        sm.apply(new_status, expected_version=expected_version)
        self.status = sm.state
        self.version = sm.version
        self.updated_at = now

    def cancel(self, now: datetime) -> None:
        if not self.can_be_cancelled():
            raise InvalidTransitionError.cannot_cancel(self.status)
        self.transition_to(OrderStatus.CANCELLED, now)

    def total_matches_items(self) -> bool:
        return self.total_amount == compute_total(self.items)

    @classmethod
    def from_row(cls, row: Dict[str, Any], item_rows: Optional[List[Dict[str, Any]]] = None) -> "Order":
        if row is None:
            raise ValueError("Cannot construct Order from None")
        item_rows = sorted(item_rows or [], key=lambda r: int(r.get("position") or 0))
        return cls(
            id=row.get("id") or None,
            customer_email=str(row.get("customer_email") or ""),
            items=[OrderItem.from_dict(r) for r in item_rows],
            total_amount=to_decimal(row.get("total_amount") or "0"),
            status=OrderStatus.parse(row.get("status")),
            created_at=_parse_ts(row.get("created_at")),
            updated_at=_parse_ts(row.get("updated_at")),
            version=int(row.get("version") or 0),
        )

    def to_row(self) -> Dict[str, Any]:
        """Flat row for the orders table; items are written separately."""
        return {
            "id": self.id or "",
            "status": self.status.value,
            "customer_email": self.customer_email,
            "total_amount": str(self.total_amount),
            "created_at": _format_ts(self.created_at),
            "updated_at": _format_ts(self.updated_at),
            "version": int(self.version),
        }
