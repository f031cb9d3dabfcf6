"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class ShippingStatus(str, Enum):
    """Physical fulfillment state of an order.

    DELIVERED and CANCELLED are terminal.
    """

    NOT_DISPATCHED = "not_dispatched"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Monetary settlement state of an order.

    Moves forward only: unpaid -> paid -> refund_initiated -> refunded.
    """

    UNPAID = "unpaid"
    PAID = "paid"
    REFUND_INITIATED = "refund_initiated"
    REFUNDED = "refunded"


class AuditAction(str, Enum):
    """Mutating actions recorded in the audit log."""

    CREATED = "created"
    PAYMENT_MARKED = "payment_marked"
    GATEWAY_ORDER_CREATED = "gateway_order_created"
    STATUS_UPDATED = "status_updated"
    CANCELLATION = "cancellation"


class OrderItem(TypedDict):
    """Single line item, stored in the items JSONB array."""

    id: str
    name: str
    price: float
    quantity: int
    weight: float


class OrderCustomer(TypedDict):
    """Customer block, stored as JSONB."""

    name: str
    email: str
    phone: str
    user_id: str


class OrderShipping(TypedDict, total=False):
    """Shipping block, stored as JSONB."""

    address: str
    pincode: str
    cost: float
    tracking_id: str | None
    zone: str
    delivery_estimate: str


class OrderPayment(TypedDict, total=False):
    """Payment confirmation, set only after the gateway reports a payment."""

    id: str
    order_id: str | None
    method: str
    verified: bool
    verified_at: str | None


class StatusHistoryEntry(TypedDict):
    """One entry of the order's status history."""

    shipping_status: str
    payment_status: str
    previous_shipping_status: str | None
    previous_payment_status: str | None
    changed_by: str
    changed_at: str
    note: str | None


class Order(TypedDict):
    """Orders table row representation."""

    order_id: str
    user_id: str
    customer: OrderCustomer
    shipping: OrderShipping
    items: list[OrderItem]
    amount: float
    shipping_status: ShippingStatus
    payment_status: PaymentStatus
    payment: OrderPayment | None
    gateway_order_id: str | None
    status_history: list[StatusHistoryEntry]
    cancelled_by: str | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime


class OrderUpdate(TypedDict, total=False):
    """Columns that can change after creation."""

    shipping_status: str
    payment_status: str
    shipping: OrderShipping
    payment: OrderPayment
    gateway_order_id: str
    status_history: list[StatusHistoryEntry]
    cancelled_by: str
    cancellation_reason: str
    updated_at: str


class AuditLogEntry(TypedDict, total=False):
    """order_audit_logs row. Rows are only ever inserted."""

    action: str
    order_id: str
    performed_by: str
    timestamp: str
    previous_shipping_status: str | None
    new_shipping_status: str | None
    previous_payment_status: str | None
    new_payment_status: str | None
    reason: str | None
    ip_address: str | None
