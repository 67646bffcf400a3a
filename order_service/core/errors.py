"""
Failure taxonomy for the order lifecycle.

Every failure carries a `kind` (machine readable) and a human readable message.
The HTTP layer maps these onto status codes in `order_service.api.errors`.
"""
from __future__ import annotations
from typing import Any, Optional


class OrderServiceError(Exception):
    kind: str = "Error"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind


class OrderValidationError(OrderServiceError):
    """Client supplied input that breaks a field or business rule."""

    EMPTY_ORDER = "EmptyOrder"
    FIELD_CONSTRAINT = "FieldConstraint"
    INVALID_TOTAL = "InvalidTotal"

    def __init__(self, message: str, kind: str = FIELD_CONSTRAINT, field: Optional[str] = None,
                 rejected_value: Any = None):
        super().__init__(message, kind=kind)
        self.field = field
        self.rejected_value = rejected_value

    @classmethod
    def empty_order(cls) -> "OrderValidationError":
        return cls("Order must contain at least one item", kind=cls.EMPTY_ORDER)

    @classmethod
    def invalid_total(cls, total: Any) -> "OrderValidationError":
        return cls(f"Order total must be greater than zero (got {total})", kind=cls.INVALID_TOTAL,
                   field="total_amount", rejected_value=total)

    @classmethod
    def field_constraint(cls, field: str, rejected_value: Any, message: str) -> "OrderValidationError":
        return cls(message, kind=cls.FIELD_CONSTRAINT, field=field, rejected_value=rejected_value)


class OrderNotFoundError(OrderServiceError):
    kind = "NotFound"

    def __init__(self, order_id: str):
        super().__init__(f"Order not found with id: {order_id}")
        self.order_id = order_id


class InvalidTransitionError(OrderServiceError):
    CANNOT_CANCEL = "CannotCancel"
    INVALID_TRANSITION = "InvalidTransition"

    def __init__(self, message: str, kind: str = INVALID_TRANSITION, current: Any = None, target: Any = None):
        super().__init__(message, kind=kind)
        self.current = current
        self.target = target

    @classmethod
    def cannot_cancel(cls, current: Any) -> "InvalidTransitionError":
        return cls(f"Cannot cancel order with status {_name(current)}. Only PENDING orders can be cancelled.",
                   kind=cls.CANNOT_CANCEL, current=current)

    @classmethod
    def invalid_transition(cls, current: Any, target: Any) -> "InvalidTransitionError":
        return cls(f"Invalid status transition from {_name(current)} to {_name(target)}",
                   kind=cls.INVALID_TRANSITION, current=current, target=target)


class ConcurrentModificationError(OrderServiceError):
    """A conditional update found the row changed since it was read."""
    kind = "Conflict"


class InfrastructureError(OrderServiceError):
    """Persistence (or other collaborator) failure; not caused by the caller."""
    kind = "Infrastructure"


def _name(status: Any) -> str:
    return getattr(status, "value", None) or str(status)
