"""Order lifecycle business logic service.

Orders live in the `orders` table; every mutating action also appends a row
to `order_audit_logs`. Cancellation writes both through the
`cancel_order_with_audit` database function so they commit or fail together.
"""

import logging
import math
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from src.api.middleware.error_handler import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    TransientStoreError,
    ValidationError,
)
from src.core.config import Settings, get_settings
from src.core.supabase import get_supabase_client
from src.models.order import (
    AuditAction,
    AuditLogEntry,
    Order,
    OrderUpdate,
    PaymentStatus,
    ShippingStatus,
    StatusHistoryEntry,
)
from src.schemas.auth import UserContext
from src.schemas.orders import OrderCreate, OrderPatch, OrderResponse
from src.services.order_lifecycle import (
    current_statuses,
    ensure_cancellable,
    ensure_payable,
    ensure_payment_transition,
    ensure_shipping_transition,
    order_actions,
    parse_payment_status,
    parse_shipping_status,
)
from src.services.shipping_rates import (
    ShippingRateEngine,
    apply_free_shipping,
    calculate_total_weight,
    get_shipping_rate_engine,
)

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
AUDIT_LOG_TABLE = "order_audit_logs"
CANCEL_ORDER_RPC = "cancel_order_with_audit"

GUEST_USER_ID = "guest"
MAX_PAGE_SIZE = 50

# Postgres error codes worth retrying: serialization failure, deadlock,
# connection failures, admin shutdown.
TRANSIENT_PG_CODES = frozenset({"40001", "40P01", "08000", "08003", "08006", "57P01"})
UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True)
class OrderPolicy:
    """Business limits applied to orders."""

    max_items: int = 20
    max_item_quantity: int = 10
    max_order_value: float = 100000.0
    max_address_length: int = 500
    max_cancellation_reason_length: int = 100
    free_shipping_threshold: float = 499.0
    allow_guest_checkout: bool = True
    create_max_attempts: int = 3
    create_backoff_seconds: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrderPolicy":
        """Create policy from application settings."""
        return cls(
            max_items=settings.max_order_items,
            max_item_quantity=settings.max_item_quantity,
            max_order_value=settings.max_order_value,
            max_address_length=settings.max_address_length,
            free_shipping_threshold=settings.free_shipping_threshold,
            allow_guest_checkout=settings.allow_guest_checkout,
            create_max_attempts=settings.order_create_max_attempts,
            create_backoff_seconds=settings.order_create_backoff_seconds,
        )


def generate_order_id() -> str:
    """Timestamp plus random suffix, e.g. ORD-1718000000000-3FA2C1."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_transient_store_error(exc: BaseException) -> bool:
    """Whether a store failure is worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, PostgrestAPIError):
        return str(exc.code) in TRANSIENT_PG_CODES
    return False


def is_owner(order: dict[str, Any], user_id: str) -> bool:
    """Ownership is the stored owner or the stored customer user ID."""
    customer = order.get("customer") or {}
    return order.get("user_id") == user_id or customer.get("user_id") == user_id


def payable_amount_paise(order: dict[str, Any]) -> int:
    """Items subtotal plus shipping, in paise."""
    shipping_cost = (order.get("shipping") or {}).get("cost") or 0
    return int(round((float(order["amount"]) + float(shipping_cost)) * 100))


def build_order_response(order: dict[str, Any]) -> OrderResponse:
    """Map a stored row to the API response, including allowed actions."""
    shipping, payment = current_statuses(order)
    return OrderResponse.model_validate(
        {
            **order,
            "shipping_status": shipping.value,
            "payment_status": payment.value,
            "status_history": order.get("status_history") or [],
            "actions": order_actions(shipping, payment),
        }
    )


def _history_entry(
    shipping: ShippingStatus,
    payment: PaymentStatus,
    changed_by: str,
    previous: tuple[ShippingStatus, PaymentStatus] | None = None,
    note: str | None = None,
) -> StatusHistoryEntry:
    return {
        "shipping_status": shipping.value,
        "payment_status": payment.value,
        "previous_shipping_status": previous[0].value if previous else None,
        "previous_payment_status": previous[1].value if previous else None,
        "changed_by": changed_by,
        "changed_at": _now_iso(),
        "note": note,
    }


def _audit_entry(
    action: AuditAction,
    order_id: str,
    performed_by: str,
    previous: tuple[ShippingStatus, PaymentStatus] | None,
    new: tuple[ShippingStatus, PaymentStatus],
    reason: str | None = None,
    ip_address: str | None = None,
) -> AuditLogEntry:
    # timestamp is filled in by the database
    return {
        "action": action.value,
        "order_id": order_id,
        "performed_by": performed_by,
        "previous_shipping_status": previous[0].value if previous else None,
        "new_shipping_status": new[0].value,
        "previous_payment_status": previous[1].value if previous else None,
        "new_payment_status": new[1].value,
        "reason": reason,
        "ip_address": ip_address,
    }


class OrderService:
    """Service for order creation, status transitions and queries."""

    def __init__(
        self,
        policy: OrderPolicy | None = None,
        rate_engine: ShippingRateEngine | None = None,
    ) -> None:
        """Initialize order service with clients and configuration."""
        self.client = get_supabase_client()
        self.policy = policy or OrderPolicy.from_settings(get_settings())
        self.rate_engine = rate_engine or get_shipping_rate_engine()

    # Validation

    def validate_order(self, data: OrderCreate) -> tuple[list[dict[str, Any]], float]:
        """Apply policy limits and compute the authoritative amount.

        The client's amount and shipping cost are never used.

        Returns:
            tuple: (normalized items, amount in rupees)

        Raises:
            ValidationError: With one detail per violated limit.
        """
        policy = self.policy
        errors: list[dict[str, Any]] = []

        if not data.items:
            errors.append({"loc": ["items"], "msg": "At least one item is required", "type": "too_short"})
        elif len(data.items) > policy.max_items:
            errors.append({"loc": ["items"], "msg": f"At most {policy.max_items} items allowed", "type": "too_long"})

        for index, item in enumerate(data.items):
            if not 1 <= item.quantity <= policy.max_item_quantity:
                errors.append(
                    {
                        "loc": ["items", str(index), "quantity"],
                        "msg": f"Quantity must be between 1 and {policy.max_item_quantity}",
                        "type": "range",
                    }
                )

        if len(data.shipping.address) > policy.max_address_length:
            errors.append(
                {
                    "loc": ["shipping", "address"],
                    "msg": f"Address must be at most {policy.max_address_length} characters",
                    "type": "too_long",
                }
            )

        amount = round(math.fsum(item.price * item.quantity for item in data.items), 2)
        if amount > policy.max_order_value:
            errors.append(
                {
                    "loc": ["amount"],
                    "msg": f"Order value {amount} exceeds the maximum of {policy.max_order_value}",
                    "type": "too_large",
                }
            )

        if errors:
            raise ValidationError("Invalid order data", details=errors)

        items = [
            {
                "id": item.id,
                "name": item.name,
                "price": item.price,
                "quantity": item.quantity,
                "weight": item.weight,
            }
            for item in data.items
        ]
        return items, amount

    # Commands

    async def create_order(
        self,
        data: OrderCreate,
        user: UserContext | None,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Validate, price and persist a new order.

        Args:
            data: Checkout submission.
            user: Authenticated caller, or None for guest checkout.
            ip_address: Caller IP for the audit log.

        Returns:
            dict: The stored order row.

        Raises:
            AuthenticationError: If guest checkout is disabled and no user is given.
            ValidationError: If the order breaks a limit or the pincode is unknown.
            TransientStoreError: If the store stays unavailable after retries.
        """
        if user is None and not self.policy.allow_guest_checkout:
            raise AuthenticationError("Sign in to place an order")

        items, amount = self.validate_order(data)
        owner_id = user.user_id if user else GUEST_USER_ID

        try:
            quote = self.rate_engine.compute_shipping(data.shipping.pincode, calculate_total_weight(items))
        except NotFoundError as e:
            raise ValidationError(
                "Shipping is not available for this pincode",
                details=[{"loc": ["shipping", "pincode"], "msg": e.message, "type": "not_serviceable"}],
            ) from e

        shipping_cost = apply_free_shipping(quote.cost, amount, self.policy.free_shipping_threshold)
        initial = (ShippingStatus.NOT_DISPATCHED, PaymentStatus.UNPAID)
        order_id = generate_order_id()

        row = {
            "order_id": order_id,
            "user_id": owner_id,
            "customer": {
                "name": data.customer.name,
                "email": str(data.customer.email),
                "phone": data.customer.phone,
                "user_id": owner_id,
            },
            "shipping": {
                "address": data.shipping.address,
                "pincode": data.shipping.pincode,
                "cost": shipping_cost,
                "tracking_id": None,
                "zone": quote.zone.value,
                "delivery_estimate": quote.delivery_estimate,
            },
            "items": items,
            "amount": amount,
            "payment_method": data.payment_method,
            "shipping_status": initial[0].value,
            "payment_status": initial[1].value,
            "payment": None,
            "status_history": [_history_entry(*initial, changed_by=owner_id, note="Order placed")],
        }

        order = await self._insert_order(row)
        logger.info("Order %s created for %s (amount=%.2f, shipping=%.2f)", order_id, owner_id, amount, shipping_cost)

        try:
            await self._append_audit_log(
                _audit_entry(AuditAction.CREATED, order_id, owner_id, None, initial, ip_address=ip_address)
            )
        except Exception:
            # The order is committed; failing here would make the client retry and duplicate it.
            logger.exception("Failed to write creation audit entry for order %s", order_id)

        return order

    async def _insert_order(self, row: dict[str, Any]) -> dict[str, Any]:
        """Insert with linear backoff on transient store failures."""
        policy = self.policy
        attempt_number = 0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(policy.create_max_attempts),
                wait=wait_incrementing(start=policy.create_backoff_seconds, increment=policy.create_backoff_seconds),
                retry=retry_if_exception(is_transient_store_error),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    response = self.client.table(ORDERS_TABLE).insert(row).execute()
        except PostgrestAPIError as e:
            if str(e.code) == UNIQUE_VIOLATION and attempt_number > 1:
                # An earlier attempt reached the database before its response was lost.
                existing = await self.get_order(row["order_id"])
                if existing:
                    return existing
            if is_transient_store_error(e):
                raise TransientStoreError(details=[{"msg": str(e.message), "type": "store"}]) from e
            raise
        except httpx.TransportError as e:
            logger.error("Order store unavailable after %d attempts: %s", attempt_number, e)
            raise TransientStoreError(details=[{"msg": str(e), "type": "store"}]) from e

        return response.data[0] if response.data else row

    async def update_order_status(
        self,
        patch: OrderPatch,
        admin: UserContext,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Admin update of shipping/payment status and tracking ID.

        Raises:
            NotFoundError: If the order does not exist.
            ValidationError: If a status is not a known value or nothing changes.
            PreconditionError: If the transition is not allowed.
        """
        requested_shipping = patch.shipping_status or patch.status
        target_shipping = parse_shipping_status(requested_shipping) if requested_shipping else None
        target_payment = parse_payment_status(patch.payment_status) if patch.payment_status else None

        if target_shipping is None and target_payment is None and patch.tracking_id is None:
            raise ValidationError("Provide a status, paymentStatus or trackingId to update")

        order = await self.get_order(patch.order_id)
        if not order:
            raise NotFoundError("Order not found")

        previous = current_statuses(order)
        new_shipping = target_shipping or previous[0]
        new_payment = target_payment or previous[1]
        ensure_shipping_transition(previous[0], new_shipping)
        ensure_payment_transition(previous[1], new_payment)

        update: OrderUpdate = {
            "shipping_status": new_shipping.value,
            "payment_status": new_payment.value,
            "updated_at": _now_iso(),
        }
        if patch.tracking_id is not None:
            update["shipping"] = {**(order.get("shipping") or {}), "tracking_id": patch.tracking_id}

        new = (new_shipping, new_payment)
        if new != previous:
            update["status_history"] = [
                *(order.get("status_history") or []),
                _history_entry(*new, changed_by=admin.user_id, previous=previous, note=patch.note),
            ]

        response = (
            self.client.table(ORDERS_TABLE)
            .update(update)
            .eq("order_id", patch.order_id)
            .execute()
        )
        updated = response.data[0] if response.data else {**order, **update}

        await self._append_audit_log(
            _audit_entry(
                AuditAction.STATUS_UPDATED,
                patch.order_id,
                admin.user_id,
                previous,
                new,
                reason=patch.note or (f"tracking_id={patch.tracking_id}" if patch.tracking_id else None),
                ip_address=ip_address,
            )
        )
        logger.info(
            "Order %s updated by %s: %s/%s -> %s/%s",
            patch.order_id,
            admin.user_id,
            previous[0].value,
            previous[1].value,
            new_shipping.value,
            new_payment.value,
        )
        return updated

    async def cancel_order(
        self,
        order_id: str,
        user: UserContext,
        reason: str | None = "user_requested",
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Cancel a paid, undispatched order and initiate its refund.

        The order update and audit entry are applied in one database
        transaction which re-checks the expected statuses, so a concurrent
        change makes this call fail instead of overwriting it.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller does not own the order.
            PreconditionError: If the order is not paid and not_dispatched.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if not is_owner(order, user.user_id):
            raise AuthorizationError("Permission denied. You can only cancel your own orders")

        previous = current_statuses(order)
        ensure_cancellable(*previous)

        new = (ShippingStatus.CANCELLED, PaymentStatus.REFUND_INITIATED)
        reason = (reason or "user_requested")[: self.policy.max_cancellation_reason_length]
        order_update = {
            "shipping_status": new[0].value,
            "payment_status": new[1].value,
            "cancelled_by": user.user_id,
            "cancellation_reason": reason,
            "status_history": [
                *(order.get("status_history") or []),
                _history_entry(*new, changed_by=user.user_id, previous=previous, note=reason),
            ],
        }
        audit = _audit_entry(
            AuditAction.CANCELLATION, order_id, user.user_id, previous, new, reason=reason, ip_address=ip_address
        )

        response = self.client.rpc(
            CANCEL_ORDER_RPC,
            {
                "p_order_id": order_id,
                "p_expected_shipping_status": previous[0].value,
                "p_expected_payment_status": previous[1].value,
                "p_order_update": order_update,
                "p_audit_entry": audit,
            },
        ).execute()

        if not response.data:
            logger.warning("Cancellation of order %s lost a concurrent update", order_id)
            raise PreconditionError("Order cannot be cancelled. Its status changed, please refresh")

        logger.info("Order %s cancelled by %s, refund initiated", order_id, user.user_id)
        return response.data

    async def mark_paid(
        self,
        order_id: str,
        payment_id: str,
        performed_by: str,
        gateway_order_id: str | None = None,
        verified: bool = False,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Record a gateway payment and move the order to paid.

        Calling this again for a paid order overwrites the payment record
        with the latest payment ID. The payment is always recorded against
        the gateway order stored on the order; a caller-supplied gateway
        order ID must match it.

        Raises:
            NotFoundError: If the order does not exist.
            ValidationError: If gateway_order_id is not the order's gateway order.
            PreconditionError: If the order is cancelled, delivered or refunding.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        stored_gateway_order_id = order.get("gateway_order_id")
        if gateway_order_id is not None and gateway_order_id != stored_gateway_order_id:
            logger.warning(
                "Payment %s for order %s names gateway order %s, expected %s",
                payment_id,
                order_id,
                gateway_order_id,
                stored_gateway_order_id,
            )
            raise ValidationError(
                "Razorpay order does not belong to this order",
                details=[{"loc": ["razorpayOrderId"], "msg": gateway_order_id, "type": "gateway_order_mismatch"}],
            )

        previous = current_statuses(order)
        ensure_payable(*previous)

        now = _now_iso()
        new = (previous[0], PaymentStatus.PAID)
        update: OrderUpdate = {
            "payment_status": PaymentStatus.PAID.value,
            "payment": {
                "id": payment_id,
                "order_id": stored_gateway_order_id,
                "method": "Razorpay",
                "verified": verified,
                "verified_at": now if verified else None,
            },
            "updated_at": now,
        }
        if previous[1] != PaymentStatus.PAID:
            update["status_history"] = [
                *(order.get("status_history") or []),
                _history_entry(*new, changed_by=performed_by, previous=previous, note="Payment received"),
            ]

        response = (
            self.client.table(ORDERS_TABLE)
            .update(update)
            .eq("order_id", order_id)
            .execute()
        )
        updated = response.data[0] if response.data else {**order, **update}

        await self._append_audit_log(
            _audit_entry(
                AuditAction.PAYMENT_MARKED,
                order_id,
                performed_by,
                previous,
                new,
                reason=f"payment_id={payment_id}",
                ip_address=ip_address,
            )
        )
        logger.info("Order %s marked paid with payment %s (verified=%s)", order_id, payment_id, verified)
        return updated

    async def attach_gateway_order(
        self,
        order: dict[str, Any],
        gateway_order_id: str,
        performed_by: str,
        ip_address: str | None = None,
    ) -> None:
        """Store the Razorpay order ID created for this order."""
        self.client.table(ORDERS_TABLE).update(
            {"gateway_order_id": gateway_order_id, "updated_at": _now_iso()}
        ).eq("order_id", order["order_id"]).execute()

        statuses = current_statuses(order)
        await self._append_audit_log(
            _audit_entry(
                AuditAction.GATEWAY_ORDER_CREATED,
                order["order_id"],
                performed_by,
                statuses,
                statuses,
                reason=f"gateway_order_id={gateway_order_id}",
                ip_address=ip_address,
            )
        )

    async def _append_audit_log(self, entry: AuditLogEntry) -> None:
        self.client.table(AUDIT_LOG_TABLE).insert(entry).execute()

    # Queries

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by ID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_order_for_user(self, order_id: str, user: UserContext) -> dict[str, Any]:
        """Get an order the caller owns, or any order for admins.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller may not view it.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if not user.is_admin and not is_owner(order, user.user_id):
            raise AuthorizationError("Not authorized to view this order")
        return order

    async def list_orders(
        self,
        user: UserContext,
        user_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """List orders, newest first.

        Non-admins only ever see their own orders. The page size is capped at 50.

        Returns:
            tuple: (orders on this page, total matching orders)

        Raises:
            AuthorizationError: If a non-admin asks for another user's orders.
            ValidationError: If the status filter is not a known shipping status.
        """
        if not user.is_admin:
            if user_id and user_id != user.user_id:
                raise AuthorizationError("You can only list your own orders")
            user_id = user.user_id

        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        start = (page - 1) * limit

        query = self.client.table(ORDERS_TABLE).select("*", count="exact")
        if user_id:
            query = query.eq("user_id", user_id)
        if status:
            query = query.eq("shipping_status", parse_shipping_status(status, field="status").value)

        response = query.order("created_at", desc=True).range(start, start + limit - 1).execute()

        return response.data or [], response.count or 0
