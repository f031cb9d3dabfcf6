"""Razorpay gateway operations."""

import logging
from typing import Any

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from src.api.middleware.error_handler import PaymentGatewayError, ValidationError
from src.core.config import get_settings
from src.core.razorpay import get_razorpay_client

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for Razorpay order creation and signature checks."""

    def __init__(self) -> None:
        """Initialize payment service with the gateway client."""
        self.razorpay: razorpay.Client = get_razorpay_client()
        self.settings = get_settings()

    def _ensure_configured(self) -> None:
        if not self.settings.razorpay_key_id or not self.settings.razorpay_key_secret:
            raise PaymentGatewayError(
                "Razorpay is not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )

    async def create_gateway_order(self, order_id: str, amount_paise: int) -> dict[str, Any]:
        """Create a Razorpay order for a storefront order.

        Args:
            order_id: Storefront order ID, sent as the receipt.
            amount_paise: Amount payable in paise.

        Returns:
            dict: Razorpay order entity (id, amount, currency, ...).

        Raises:
            ValidationError: If the amount is not positive.
            PaymentGatewayError: If Razorpay is unconfigured, rejects the call or times out.
        """
        self._ensure_configured()
        if amount_paise <= 0:
            raise ValidationError("Order amount must be positive to start a payment")

        try:
            gateway_order = self.razorpay.order.create(
                {
                    "amount": amount_paise,
                    "currency": self.settings.razorpay_currency,
                    "receipt": order_id,
                    "notes": {"order_id": order_id},
                },
                timeout=self.settings.razorpay_timeout_seconds,
            )
        except (BadRequestError, GatewayError, ServerError, requests.RequestException) as e:
            logger.error("Razorpay order creation failed for %s: %s", order_id, e)
            raise PaymentGatewayError(f"Payment gateway error: {e}") from e

        logger.info("Created Razorpay order %s for %s (%d paise)", gateway_order.get("id"), order_id, amount_paise)
        return gateway_order

    def verify_payment_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        """Check the HMAC signature Razorpay checkout returns.

        Raises:
            ValidationError: If the signature does not match.
            PaymentGatewayError: If Razorpay is not configured.
        """
        self._ensure_configured()
        try:
            self.razorpay.utility.verify_payment_signature(
                {
                    "razorpay_order_id": gateway_order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except SignatureVerificationError as e:
            logger.warning("Invalid payment signature for payment %s (order %s)", payment_id, gateway_order_id)
            raise ValidationError(
                "Invalid payment signature",
                details=[{"loc": ["razorpaySignature"], "msg": "Signature verification failed", "type": "signature"}],
            ) from e
