"""Order API routes: checkout, listing, admin updates and cancellation."""

import math
from datetime import datetime, timezone

from fastapi import APIRouter, Query, status

from src.api.deps import AdminUser, ClientIP, CurrentUser, JSONBody, OptionalUser
from src.schemas.common import Pagination
from src.schemas.orders import (
    CancelOrderRequest,
    CancelOrderResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderPatch,
    OrderResponse,
)
from src.services.order_service import MAX_PAGE_SIZE, OrderService, build_order_response

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Creates an unpaid order. Amount and shipping are computed server-side.",
)
async def create_order(
    data: OrderCreate,
    user: OptionalUser,
    ip_address: ClientIP,
) -> OrderCreateResponse:
    """Create a new order for the caller, or a guest order without a token.

    Raises:
        ValidationError: 400 if the order breaks a limit or the pincode is not serviceable.
        AuthenticationError: 401 if guest checkout is disabled and no token is sent.
        TransientStoreError: 500 if the store stays unavailable after retries.
    """
    service = OrderService()
    order = await service.create_order(data, user, ip_address=ip_address)

    shipping = order["shipping"]
    return OrderCreateResponse(
        order_id=order["order_id"],
        amount=order["amount"],
        shipping_cost=shipping["cost"],
        total=round(order["amount"] + shipping["cost"], 2),
        shipping_status=order["shipping_status"],
        payment_status=order["payment_status"],
        items_count=len(order["items"]),
        delivery_estimate=shipping.get("delivery_estimate"),
    )


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Newest first. Admins may filter by user; everyone else only sees their own orders.",
)
async def list_orders(
    user: CurrentUser,
    user_id: str | None = Query(default=None, alias="userId"),
    order_status: str | None = Query(default=None, alias="status", description="Shipping status filter"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
) -> OrderListResponse:
    """List orders visible to the caller.

    Raises:
        AuthorizationError: 403 if a non-admin asks for another user's orders.
    """
    service = OrderService()
    limit = min(limit, MAX_PAGE_SIZE)
    orders, total = await service.list_orders(user, user_id=user_id, status=order_status, page=page, limit=limit)

    return OrderListResponse(
        data=[build_order_response(order) for order in orders],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order. Only accessible by the order owner or an admin.",
)
async def get_order(order_id: str, user: CurrentUser) -> OrderResponse:
    """Get a single order by ID.

    Raises:
        NotFoundError: 404 if order not found.
        AuthorizationError: 403 if not authorized to view this order.
    """
    service = OrderService()
    order = await service.get_order_for_user(order_id, user)
    return build_order_response(order)


@router.patch(
    "",
    response_model=OrderResponse,
    summary="Update order status (admin)",
    description="Update shipping status, payment status or tracking ID. `status` is an alias for shippingStatus.",
)
async def update_order(
    data: OrderPatch,
    admin: AdminUser,
    ip_address: ClientIP,
) -> OrderResponse:
    """Apply an admin status update.

    Raises:
        ValidationError: 400 on an unknown status value.
        NotFoundError: 404 if the order does not exist.
        PreconditionError: 409 if the transition is not allowed.
    """
    service = OrderService()
    order = await service.update_order_status(data, admin, ip_address=ip_address)
    return build_order_response(order)


cancel_router = APIRouter(tags=["orders"])


@cancel_router.post(
    "/cancelOrder",
    response_model=CancelOrderResponse,
    dependencies=[JSONBody],
    summary="Cancel an order",
    description="Cancels a paid order that has not been dispatched and initiates a refund.",
)
async def cancel_order(
    data: CancelOrderRequest,
    user: CurrentUser,
    ip_address: ClientIP,
) -> CancelOrderResponse:
    """Cancel the caller's order.

    Raises:
        UnsupportedMediaTypeError: 415 if the body is not JSON.
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller does not own the order.
        PreconditionError: 409 unless the order is paid and not dispatched.
    """
    service = OrderService()
    order = await service.cancel_order(
        data.order_id,
        user,
        reason=data.cancellation_reason,
        ip_address=ip_address,
    )

    return CancelOrderResponse(
        order_id=data.order_id,
        new_shipping_status=order["shipping_status"],
        new_payment_status=order["payment_status"],
        timestamp=datetime.now(timezone.utc),
    )
