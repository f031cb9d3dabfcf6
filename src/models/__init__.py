"""Database model type definitions."""

from src.models.order import (
    AuditAction,
    AuditLogEntry,
    Order,
    OrderItem,
    OrderUpdate,
    PaymentStatus,
    ShippingStatus,
)

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "Order",
    "OrderItem",
    "OrderUpdate",
    "PaymentStatus",
    "ShippingStatus",
]
