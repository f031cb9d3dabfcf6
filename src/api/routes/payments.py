"""Razorpay payment routes."""

from fastapi import APIRouter, status

from src.api.deps import ClientIP, CurrentUser, OptionalUser
from src.api.middleware.error_handler import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from src.models.order import PaymentStatus
from src.schemas.orders import PaymentResponse
from src.schemas.payments import (
    GatewayOrderCreate,
    GatewayOrderResponse,
    MarkPaidRequest,
    MarkPaidResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
)
from src.services.order_lifecycle import current_statuses, ensure_payable
from src.services.order_service import GUEST_USER_ID, OrderService, is_owner, payable_amount_paise
from src.services.payment_service import PaymentService

router = APIRouter(prefix="/razorpay", tags=["payments"])


@router.post(
    "",
    response_model=GatewayOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Razorpay order",
    description="Creates a Razorpay order for the stored order total (items plus shipping).",
)
async def create_gateway_order(
    data: GatewayOrderCreate,
    user: OptionalUser,
    ip_address: ClientIP,
) -> GatewayOrderResponse:
    """Start a payment for an unpaid order.

    Guest orders can be paid without a token; orders placed by a signed-in
    customer need that customer's token or an admin's.

    Raises:
        NotFoundError: 404 if the order does not exist.
        PreconditionError: 409 if the order is already paid or closed.
        PaymentGatewayError: 502 if Razorpay fails.
    """
    order_service = OrderService()
    order = await order_service.get_order(data.order_id)
    if not order:
        raise NotFoundError("Order not found")

    if order.get("user_id") != GUEST_USER_ID:
        if user is None:
            raise AuthenticationError("Sign in to pay for this order")
        if not user.is_admin and not is_owner(order, user.user_id):
            raise AuthorizationError("Not authorized to pay for this order")

    shipping_status, payment_status = current_statuses(order)
    ensure_payable(shipping_status, payment_status)
    if payment_status != PaymentStatus.UNPAID:
        raise PreconditionError("Order is already paid")

    payment_service = PaymentService()
    gateway_order = await payment_service.create_gateway_order(order["order_id"], payable_amount_paise(order))

    performed_by = user.user_id if user else GUEST_USER_ID
    await order_service.attach_gateway_order(order, gateway_order["id"], performed_by, ip_address=ip_address)

    return GatewayOrderResponse(
        order_id=order["order_id"],
        gateway_order_id=gateway_order["id"],
        amount=gateway_order["amount"],
        currency=gateway_order["currency"],
        key_id=payment_service.settings.razorpay_key_id,
    )


@router.post(
    "/verify",
    response_model=PaymentVerifyResponse,
    summary="Verify payment signature",
    description="Checks the signature Razorpay checkout returned. Does not change the order.",
)
async def verify_payment(data: PaymentVerifyRequest) -> PaymentVerifyResponse:
    """Verify a Razorpay payment signature.

    Raises:
        ValidationError: 400 if the signature does not match.
    """
    PaymentService().verify_payment_signature(
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
    )
    return PaymentVerifyResponse(order_id=data.order_id, payment_id=data.razorpay_payment_id)


@router.post(
    "/markPaid",
    response_model=MarkPaidResponse,
    summary="Mark order as paid",
    description="Records a Razorpay payment on the order. A supplied signature is verified first.",
)
async def mark_paid(
    data: MarkPaidRequest,
    user: CurrentUser,
    ip_address: ClientIP,
) -> MarkPaidResponse:
    """Record a payment.

    Raises:
        ValidationError: 400 if the signature is invalid, lacks the Razorpay order ID,
            or names a Razorpay order other than the one stored on the order.
        NotFoundError: 404 if the order does not exist.
        PreconditionError: 409 if the order is closed or refunding.
    """
    verified = False
    if data.razorpay_signature:
        if not data.razorpay_order_id:
            raise ValidationError(
                "razorpayOrderId is required to verify a signature",
                details=[{"loc": ["razorpayOrderId"], "msg": "Field required", "type": "missing"}],
            )
        PaymentService().verify_payment_signature(
            data.razorpay_order_id,
            data.razorpay_payment_id,
            data.razorpay_signature,
        )
        verified = True

    service = OrderService()
    order = await service.mark_paid(
        data.order_id,
        data.razorpay_payment_id,
        performed_by=user.user_id,
        gateway_order_id=data.razorpay_order_id,
        verified=verified,
        ip_address=ip_address,
    )

    return MarkPaidResponse(
        order_id=data.order_id,
        payment_status=order["payment_status"],
        payment=PaymentResponse.model_validate(order["payment"]),
    )
