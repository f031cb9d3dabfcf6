"""Razorpay payment schemas."""

from pydantic import Field

from src.schemas.common import CamelModel
from src.schemas.orders import PaymentResponse


class GatewayOrderCreate(CamelModel):
    """Request a Razorpay order for an existing storefront order."""

    order_id: str = Field(min_length=1)


class GatewayOrderResponse(CamelModel):
    """Razorpay order details the checkout widget needs."""

    order_id: str
    gateway_order_id: str = Field(description="Razorpay order ID")
    amount: int = Field(description="Amount in paise")
    currency: str
    key_id: str = Field(description="Public Razorpay key for the checkout widget")


class PaymentVerifyRequest(CamelModel):
    """Payment triple returned by Razorpay checkout."""

    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    order_id: str | None = None


class PaymentVerifyResponse(CamelModel):
    success: bool = True
    order_id: str | None = None
    payment_id: str
    message: str = "Payment verified successfully"


class MarkPaidRequest(CamelModel):
    """Body of POST /razorpay/markPaid.

    When razorpayOrderId and razorpaySignature are both present the
    signature is verified and the payment recorded as verified.
    """

    order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: str | None = None
    razorpay_signature: str | None = None


class MarkPaidResponse(CamelModel):
    success: bool = True
    order_id: str
    payment_status: str
    payment: PaymentResponse
