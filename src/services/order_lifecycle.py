"""Order status rules.

Shipping and payment status are two independent axes. This module holds
the rules that constrain them jointly: which values exist, which moves are
allowed, and when an order may be cancelled or paid. Everything here is
pure; the order service applies these checks before it touches the store.
"""

from typing import Any

from src.api.middleware.error_handler import PreconditionError, ValidationError
from src.models.order import PaymentStatus, ShippingStatus

TERMINAL_SHIPPING_STATUSES: frozenset[ShippingStatus] = frozenset(
    {ShippingStatus.DELIVERED, ShippingStatus.CANCELLED}
)

# Payment only moves forward. Re-marking a paid order as paid is handled
# separately by the mark-paid path, which overwrites the payment record.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUND_INITIATED}),
    PaymentStatus.REFUND_INITIATED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE_SHIPPING_STATUS = ShippingStatus.NOT_DISPATCHED
CANCELLABLE_PAYMENT_STATUS = PaymentStatus.PAID


def parse_shipping_status(value: str, field: str = "shippingStatus") -> ShippingStatus:
    """Convert a client-supplied value to ShippingStatus.

    Raises:
        ValidationError: If the value is not a known shipping status.
    """
    try:
        return ShippingStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in ShippingStatus)
        raise ValidationError(
            f"Invalid shipping status: {value}",
            details=[{"loc": [field], "msg": f"Allowed values: {allowed}", "type": "enum"}],
        ) from None


def parse_payment_status(value: str, field: str = "paymentStatus") -> PaymentStatus:
    """Convert a client-supplied value to PaymentStatus.

    Raises:
        ValidationError: If the value is not a known payment status.
    """
    try:
        return PaymentStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise ValidationError(
            f"Invalid payment status: {value}",
            details=[{"loc": [field], "msg": f"Allowed values: {allowed}", "type": "enum"}],
        ) from None


def current_statuses(order: dict[str, Any]) -> tuple[ShippingStatus, PaymentStatus]:
    """Read the stored status pair, defaulting legacy rows to not_dispatched/unpaid."""
    shipping = ShippingStatus(order.get("shipping_status") or ShippingStatus.NOT_DISPATCHED.value)
    payment = PaymentStatus(order.get("payment_status") or PaymentStatus.UNPAID.value)
    return shipping, payment


def _state_details(shipping: ShippingStatus, payment: PaymentStatus) -> list[dict[str, Any]]:
    return [
        {"loc": ["shippingStatus"], "msg": shipping.value, "type": "current_state"},
        {"loc": ["paymentStatus"], "msg": payment.value, "type": "current_state"},
    ]


def can_cancel(shipping: ShippingStatus, payment: PaymentStatus) -> bool:
    """Only paid orders that have not been dispatched can be cancelled."""
    return shipping == CANCELLABLE_SHIPPING_STATUS and payment == CANCELLABLE_PAYMENT_STATUS


def ensure_cancellable(shipping: ShippingStatus, payment: PaymentStatus) -> None:
    """Raise PreconditionError unless the order can be cancelled."""
    if not can_cancel(shipping, payment):
        raise PreconditionError(
            "Order cannot be cancelled. Only orders that are paid and not dispatched can be cancelled",
            details=_state_details(shipping, payment),
        )


def ensure_payable(shipping: ShippingStatus, payment: PaymentStatus) -> None:
    """Raise PreconditionError unless a payment may be recorded.

    Unpaid orders and already-paid orders (payment record is overwritten)
    accept a payment; terminal or refunding orders do not.
    """
    if shipping in TERMINAL_SHIPPING_STATUSES or payment not in (PaymentStatus.UNPAID, PaymentStatus.PAID):
        raise PreconditionError(
            "Payment cannot be recorded for this order",
            details=_state_details(shipping, payment),
        )


def ensure_shipping_transition(current: ShippingStatus, target: ShippingStatus) -> None:
    """Reject any move out of a terminal shipping state.

    Setting the same value again is a no-op and allowed.
    """
    if current == target:
        return
    if current in TERMINAL_SHIPPING_STATUSES:
        raise PreconditionError(
            f"Order is {current.value}; its shipping status can no longer change",
            details=[{"loc": ["shippingStatus"], "msg": current.value, "type": "current_state"}],
        )


def ensure_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    """Reject payment moves that are not one step forward."""
    if current == target:
        return
    if target not in PAYMENT_TRANSITIONS[current]:
        raise PreconditionError(
            f"Payment status cannot change from {current.value} to {target.value}",
            details=[{"loc": ["paymentStatus"], "msg": current.value, "type": "current_state"}],
        )


def order_actions(shipping: ShippingStatus, payment: PaymentStatus) -> dict[str, bool]:
    """Actions the storefront may offer for an order in this state."""
    not_cancelled = shipping != ShippingStatus.CANCELLED
    return {
        "can_cancel": can_cancel(shipping, payment),
        "can_track": payment == PaymentStatus.PAID and not_cancelled,
        "can_pay": payment == PaymentStatus.UNPAID and not_cancelled,
    }
