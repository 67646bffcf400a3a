from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, condecimal, conint, constr, field_validator

from order_service.models.order import Order, OrderItem, OrderStatus
from order_service.services.orders import MAX_EMAIL, Page


class OrderItemIn(BaseModel):
    product_name: constr(strip_whitespace=True, min_length=1, max_length=200) = Field(
        ..., description="Name of the product", examples=["Laptop"])
    quantity: conint(strict=True, ge=1, le=1000) = Field(..., description="Quantity of items")
    unit_price: condecimal(ge=Decimal("0.01"), le=Decimal("1000000.00"), decimal_places=2) = Field(
        ..., description="Price per unit", examples=["1299.99"])


class OrderCreate(BaseModel):
    customer_email: EmailStr = Field(..., description="Customer email address")
    items: List[OrderItemIn] = Field(default_factory=list, description="Items to order (at least one)")

    # a caller-supplied `status` (or anything else) is ignored; new orders are always PENDING
    model_config = ConfigDict(extra="ignore")

    @field_validator("customer_email", mode="before")
    @classmethod
    def _email_length(cls, v):
        if isinstance(v, str) and len(v.strip()) > MAX_EMAIL:
            raise ValueError(f"Customer email must not exceed {MAX_EMAIL} characters")
        return v


class OrderItemOut(BaseModel):
    id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemOut":
        return cls(id=item.id, product_name=item.product_name, quantity=item.quantity,
                   unit_price=item.unit_price, subtotal=item.subtotal)


class OrderOut(BaseModel):
    id: str
    status: OrderStatus
    customer_email: str
    total_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = Field(default_factory=list)

    @classmethod
    def from_order(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            status=order.status,
            customer_email=order.customer_email,
            total_amount=order.total_amount,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemOut.from_item(it) for it in order.items],
        )


class PageOut(BaseModel):
    content: List[OrderOut]
    page_number: int = Field(..., description="Current page number (1-indexed)")
    page_size: int
    total_elements: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page) -> "PageOut":
        return cls(
            content=[OrderOut.from_order(o) for o in page.content],
            page_number=page.page_number,
            page_size=page.page_size,
            total_elements=page.total_elements,
            total_pages=page.total_pages,
        )


class FieldErrorOut(BaseModel):
    field: str
    rejected_value: Optional[str] = None
    message: str


class ErrorOut(BaseModel):
    timestamp: datetime
    status: int
    error: str
    kind: str
    message: str
    path: str
    validation_errors: Optional[List[FieldErrorOut]] = None

    model_config = ConfigDict(extra="forbid")

    def body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
