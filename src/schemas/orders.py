"""Order Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, EmailStr, Field

from src.schemas.common import CamelModel, Pagination

_UNSAFE_CHARS = re.compile(r"[<>\"']")


def sanitize_text(value: Any) -> Any:
    """Trim strings and strip characters usable for markup injection."""
    if isinstance(value, str):
        return _UNSAFE_CHARS.sub("", value.strip())
    return value


SanitizedStr = Annotated[str, BeforeValidator(sanitize_text)]
SanitizedEmail = Annotated[EmailStr, BeforeValidator(sanitize_text)]


# Requests


class OrderItemInput(CamelModel):
    """Line item as submitted from the cart."""

    id: SanitizedStr = Field(min_length=1, max_length=100, description="Product ID")
    name: SanitizedStr = Field(min_length=1, max_length=200, description="Product name")
    price: float = Field(ge=0, description="Unit price in rupees")
    quantity: int = Field(description="Quantity ordered")
    weight: float | None = Field(default=None, gt=0, description="Unit weight in kg")


class CustomerInput(CamelModel):
    """Customer contact details."""

    name: SanitizedStr = Field(min_length=1, max_length=100)
    email: SanitizedEmail
    phone: SanitizedStr = Field(default="", max_length=20)
    user_id: SanitizedStr | None = Field(default=None, description="Ignored; the owner comes from the token")


class ShippingInput(CamelModel):
    """Shipping destination."""

    address: SanitizedStr = Field(min_length=1)
    pincode: SanitizedStr = Field(pattern=r"^[0-9]{6}$", description="6-digit destination pincode")
    cost: float | None = Field(default=None, description="Ignored; shipping is recomputed server-side")


class OrderCreate(CamelModel):
    """Checkout submission for POST /orders."""

    items: list[OrderItemInput]
    customer: CustomerInput
    shipping: ShippingInput
    amount: float | None = Field(default=None, description="Ignored; the amount is recomputed server-side")
    payment_method: SanitizedStr = Field(default="razorpay", max_length=30)


class OrderPatch(CamelModel):
    """Admin status or tracking update for PATCH /orders."""

    order_id: str = Field(min_length=1)
    status: str | None = Field(default=None, description="Alias for shippingStatus")
    shipping_status: str | None = None
    payment_status: str | None = None
    tracking_id: SanitizedStr | None = Field(default=None, max_length=100)
    note: SanitizedStr | None = Field(default=None, max_length=200)


class CancelOrderRequest(CamelModel):
    """Customer cancellation for POST /cancelOrder."""

    order_id: str = Field(min_length=8, description="Order to cancel")
    cancellation_reason: SanitizedStr | None = Field(default="user_requested")


# Responses


class OrderItemResponse(CamelModel):
    id: str
    name: str
    price: float
    quantity: int
    weight: float | None = None


class CustomerResponse(CamelModel):
    name: str
    email: str
    phone: str = ""
    user_id: str


class ShippingResponse(CamelModel):
    address: str
    pincode: str
    cost: float = 0
    tracking_id: str | None = None
    zone: str | None = None
    delivery_estimate: str | None = None


class PaymentResponse(CamelModel):
    id: str
    order_id: str | None = None
    method: str | None = None
    verified: bool = False
    verified_at: datetime | None = None


class StatusHistoryResponse(CamelModel):
    shipping_status: str
    payment_status: str
    previous_shipping_status: str | None = None
    previous_payment_status: str | None = None
    changed_by: str
    changed_at: datetime
    note: str | None = None


class OrderActions(CamelModel):
    """What the customer may do with the order right now."""

    can_cancel: bool
    can_track: bool
    can_pay: bool


class OrderResponse(CamelModel):
    """Schema for order API responses."""

    order_id: str = Field(description="Order identifier")
    user_id: str = Field(description="Owner user ID or 'guest'")
    customer: CustomerResponse
    shipping: ShippingResponse
    items: list[OrderItemResponse]
    amount: float = Field(description="Items subtotal in rupees")
    shipping_status: str
    payment_status: str
    payment: PaymentResponse | None = None
    gateway_order_id: str | None = None
    status_history: list[StatusHistoryResponse] = Field(default_factory=list)
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    actions: OrderActions
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderCreateResponse(CamelModel):
    """Schema for POST /orders responses."""

    order_id: str
    status: str = Field(default="pending", description="Awaiting payment")
    amount: float = Field(description="Items subtotal in rupees")
    shipping_cost: float
    total: float = Field(description="Amount payable including shipping")
    shipping_status: str
    payment_status: str
    items_count: int
    delivery_estimate: str | None = None


class OrderListResponse(CamelModel):
    """Paginated envelope for GET /orders."""

    data: list[OrderResponse]
    pagination: Pagination


class CancelOrderResponse(CamelModel):
    """Schema for POST /cancelOrder responses."""

    success: bool = True
    order_id: str
    new_shipping_status: str
    new_payment_status: str
    refund_initiated: bool = True
    timestamp: datetime
