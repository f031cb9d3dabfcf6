"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ADMIN_USER_IDS", "configured-admin-id")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key123")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test-razorpay-secret")
os.environ.setdefault("ORDER_CREATE_BACKOFF_SECONDS", "0")

TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]
CUSTOMER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_CUSTOMER_ID = "660e8400-e29b-41d4-a716-446655440000"
ADMIN_ID = "770e8400-e29b-41d4-a716-446655440000"


def create_test_token(
    sub: str = CUSTOMER_ID,
    email: str | None = "test@example.com",
    role: str | None = "authenticated",
    exp_offset: int = 3600,
    secret: str = TEST_JWT_SECRET,
    app_metadata: dict[str, Any] | None = None,
) -> str:
    """Create a signed Supabase-style access token.

    Args:
        sub: Subject (user ID).
        email: User email.
        role: Role claim.
        exp_offset: Seconds from now for expiration (negative for expired).
        secret: Signing secret.
        app_metadata: Optional app_metadata claim.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": sub,
        "email": email,
        "role": role,
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test-project.supabase.co/auth/v1",
    }
    if app_metadata is not None:
        payload["app_metadata"] = app_metadata
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def make_order(**overrides: Any) -> dict[str, Any]:
    """Build a stored order row."""
    order: dict[str, Any] = {
        "order_id": "ORD-1718000000000-A1B2C3",
        "user_id": CUSTOMER_ID,
        "customer": {
            "name": "Asha Verma",
            "email": "asha@example.com",
            "phone": "9876543210",
            "user_id": CUSTOMER_ID,
        },
        "shipping": {
            "address": "12 Civil Lines, Gorakhpur",
            "pincode": "273001",
            "cost": 45,
            "tracking_id": None,
            "zone": "local",
            "delivery_estimate": "3 Days",
        },
        "items": [
            {"id": "nb-a5-ruled", "name": "A5 Ruled Notebook", "price": 120.0, "quantity": 2, "weight": 0.3},
        ],
        "amount": 240.0,
        "shipping_status": "not_dispatched",
        "payment_status": "paid",
        "payment": {
            "id": "pay_123",
            "order_id": "order_rzp_123",
            "method": "Razorpay",
            "verified": True,
            "verified_at": "2024-06-10T10:00:00+00:00",
        },
        "gateway_order_id": "order_rzp_123",
        "status_history": [
            {
                "shipping_status": "not_dispatched",
                "payment_status": "unpaid",
                "previous_shipping_status": None,
                "previous_payment_status": None,
                "changed_by": CUSTOMER_ID,
                "changed_at": "2024-06-10T09:55:00+00:00",
                "note": "Order placed",
            }
        ],
        "cancelled_by": None,
        "cancellation_reason": None,
        "created_at": "2024-06-10T09:55:00+00:00",
        "updated_at": "2024-06-10T10:00:00+00:00",
    }
    order.update(overrides)
    return order


def make_response(data: Any = None, count: int | None = None) -> MagicMock:
    """Build a PostgREST-style response object."""
    response = MagicMock()
    response.data = data
    response.count = count
    return response


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = make_response([])

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client), \
         patch("src.services.order_service.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def mock_razorpay_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Razorpay SDK client.

    Yields:
        MagicMock: Mocked razorpay.Client.
    """
    mock_client = MagicMock()
    with patch("src.services.payment_service.get_razorpay_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return auth_headers(create_test_token())


@pytest.fixture
def other_customer_headers() -> dict[str, str]:
    return auth_headers(create_test_token(sub=OTHER_CUSTOMER_ID, email="other@example.com"))


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(create_test_token(sub=ADMIN_ID, email="admin@example.com", app_metadata={"role": "admin"}))


@pytest.fixture
def token_factory() -> Any:
    """Return the token builder for tests that need custom claims."""
    return create_test_token


@pytest.fixture
def order_factory() -> Any:
    """Return the stored-order builder."""
    return make_order


@pytest.fixture
def db_response() -> Any:
    """Return the PostgREST response builder."""
    return make_response
