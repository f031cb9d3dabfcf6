"""Razorpay client configuration and singleton."""

import logging
from functools import lru_cache

import razorpay

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_razorpay() -> None:
    """Check Razorpay credentials at application startup.

    If Razorpay keys are not configured, gateway operations will fail with clear errors.
    """
    settings = get_settings()
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        logger.warning("Razorpay keys not configured. Payment features will not work.")
    elif settings.is_razorpay_test_mode:
        logger.info("Razorpay running with test keys")


@lru_cache
def get_razorpay_client() -> razorpay.Client:
    """Get the cached Razorpay client.

    The key secret passed as basic auth is also the HMAC key the SDK
    uses for payment signature verification. The SDK session has no
    default timeout; network calls pass `razorpay_timeout_seconds` per
    request (see PaymentService).

    Returns:
        razorpay.Client: Client authenticated with the configured keys.
    """
    settings = get_settings()
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))
