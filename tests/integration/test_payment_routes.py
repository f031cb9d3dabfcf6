"""Integration tests for Razorpay payment endpoints."""

import hashlib
import hmac
from typing import Any
from unittest.mock import MagicMock, patch

import razorpay
from fastapi.testclient import TestClient
from razorpay.errors import ServerError, SignatureVerificationError

ORDER_ID = "ORD-1718000000000-A1B2C3"


def set_order_lookup(mock_supabase_client: MagicMock, data: dict[str, Any] | None, db_response: Any) -> None:
    mock_supabase_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
        db_response(data)
    )


class TestCreateGatewayOrder:
    """Tests for POST /api/v1/razorpay endpoint."""

    def test_creates_order_for_owner(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test the gateway amount is items plus shipping in paise."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)
        mock_razorpay_client.order.create.return_value = {"id": "order_rzp_9", "amount": 28500, "currency": "INR"}

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID}, headers=customer_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["orderId"] == ORDER_ID
        assert data["gatewayOrderId"] == "order_rzp_9"
        assert data["amount"] == 28500
        assert data["currency"] == "INR"
        assert data["keyId"] == "rzp_test_key123"

        assert mock_razorpay_client.order.create.call_args.args[0]["amount"] == 28500
        update = mock_supabase_client.table.return_value.update.call_args.args[0]
        assert update["gateway_order_id"] == "order_rzp_9"

    def test_guest_order_without_token(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test guest orders can be paid without signing in."""
        guest_order = order_factory(user_id="guest", payment_status="unpaid", payment=None)
        guest_order["customer"].pop("user_id", None)
        set_order_lookup(mock_supabase_client, guest_order, db_response)
        mock_razorpay_client.order.create.return_value = {"id": "order_rzp_9", "amount": 28500, "currency": "INR"}

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID})

        assert response.status_code == 201

    def test_customer_order_needs_token(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test a signed-in customer's order cannot be paid anonymously."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID})

        assert response.status_code == 401
        mock_razorpay_client.order.create.assert_not_called()

    def test_other_customer_forbidden(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        other_customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test customers cannot start payments for other people's orders."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID}, headers=other_customer_headers)

        assert response.status_code == 403

    def test_already_paid(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test paid orders are not charged twice."""
        set_order_lookup(mock_supabase_client, order_factory(), db_response)

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID}, headers=customer_headers)

        assert response.status_code == 409
        mock_razorpay_client.order.create.assert_not_called()

    def test_missing_order(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        db_response: Any,
    ) -> None:
        """Test unknown orders are 404."""
        set_order_lookup(mock_supabase_client, None, db_response)

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID}, headers=customer_headers)

        assert response.status_code == 404

    def test_gateway_failure(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test Razorpay outages are a 502."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)
        mock_razorpay_client.order.create.side_effect = ServerError("upstream unavailable")

        response = client.post("/api/v1/razorpay", json={"orderId": ORDER_ID}, headers=customer_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "payment_gateway_error"


class TestVerifyPayment:
    """Tests for POST /api/v1/razorpay/verify endpoint."""

    def test_valid_signature(self, client: TestClient, mock_razorpay_client: MagicMock) -> None:
        """Test a matching signature is reported as verified."""
        response = client.post(
            "/api/v1/razorpay/verify",
            json={
                "razorpayOrderId": "order_rzp_1",
                "razorpayPaymentId": "pay_1",
                "razorpaySignature": "sig",
                "orderId": ORDER_ID,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["paymentId"] == "pay_1"
        assert data["orderId"] == ORDER_ID

    def test_invalid_signature(self, client: TestClient, mock_razorpay_client: MagicMock) -> None:
        """Test a mismatched signature is a 400."""
        mock_razorpay_client.utility.verify_payment_signature.side_effect = SignatureVerificationError(
            "Razorpay Signature Verification Failed"
        )

        response = client.post(
            "/api/v1/razorpay/verify",
            json={"razorpayOrderId": "order_rzp_1", "razorpayPaymentId": "pay_1", "razorpaySignature": "forged"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid payment signature"

    def test_missing_fields(self, client: TestClient, mock_razorpay_client: MagicMock) -> None:
        """Test the payment triple is required."""
        response = client.post("/api/v1/razorpay/verify", json={"razorpayOrderId": "order_rzp_1"})

        assert response.status_code == 400


class TestMarkPaid:
    """Tests for POST /api/v1/razorpay/markPaid endpoint."""

    def test_marks_verified_payment(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test a signed payment is verified and recorded."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)
        mock_supabase_client.table.return_value.update.return_value.eq.return_value.execute.return_value = db_response(None)

        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={
                "orderId": ORDER_ID,
                "razorpayPaymentId": "pay_9",
                "razorpayOrderId": "order_rzp_123",
                "razorpaySignature": "sig",
            },
            headers=customer_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["paymentStatus"] == "paid"
        assert data["payment"]["id"] == "pay_9"
        assert data["payment"]["verified"] is True
        assert data["payment"]["orderId"] == "order_rzp_123"
        mock_razorpay_client.utility.verify_payment_signature.assert_called_once()

    def test_signature_for_another_gateway_order(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test a genuine signature for a different Razorpay order is rejected."""
        set_order_lookup(
            mock_supabase_client,
            order_factory(payment_status="unpaid", payment=None, gateway_order_id="order_EXPENSIVE"),
            db_response,
        )
        signature = hmac.new(b"test-razorpay-secret", b"order_CHEAP|pay_cheap", hashlib.sha256).hexdigest()
        razorpay_client = razorpay.Client(auth=("rzp_test_key123", "test-razorpay-secret"))

        with patch("src.services.payment_service.get_razorpay_client", return_value=razorpay_client):
            response = client.post(
                "/api/v1/razorpay/markPaid",
                json={
                    "orderId": ORDER_ID,
                    "razorpayPaymentId": "pay_cheap",
                    "razorpayOrderId": "order_CHEAP",
                    "razorpaySignature": signature,
                },
                headers=customer_headers,
            )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["details"][0]["loc"] == ["razorpayOrderId"]
        mock_supabase_client.table.return_value.update.assert_not_called()

    def test_unsigned_payment_is_unverified(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test a payment ID alone is recorded without verification."""
        set_order_lookup(mock_supabase_client, order_factory(payment_status="unpaid", payment=None), db_response)
        mock_supabase_client.table.return_value.update.return_value.eq.return_value.execute.return_value = db_response(None)

        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={"orderId": ORDER_ID, "razorpayPaymentId": "pay_9"},
            headers=customer_headers,
        )

        assert response.status_code == 200
        assert response.json()["payment"]["verified"] is False
        mock_razorpay_client.utility.verify_payment_signature.assert_not_called()

    def test_signature_needs_gateway_order(
        self, client: TestClient, mock_razorpay_client: MagicMock, customer_headers: dict[str, str]
    ) -> None:
        """Test a signature without the Razorpay order ID is a 400."""
        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={"orderId": ORDER_ID, "razorpayPaymentId": "pay_9", "razorpaySignature": "sig"},
            headers=customer_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["razorpayOrderId"]

    def test_invalid_signature(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
    ) -> None:
        """Test a forged signature leaves the order untouched."""
        mock_razorpay_client.utility.verify_payment_signature.side_effect = SignatureVerificationError(
            "Razorpay Signature Verification Failed"
        )

        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={
                "orderId": ORDER_ID,
                "razorpayPaymentId": "pay_9",
                "razorpayOrderId": "order_rzp_123",
                "razorpaySignature": "forged",
            },
            headers=customer_headers,
        )

        assert response.status_code == 400
        mock_supabase_client.table.return_value.update.assert_not_called()

    def test_requires_auth(self, client: TestClient, mock_razorpay_client: MagicMock) -> None:
        """Test marking paid needs a token."""
        response = client.post("/api/v1/razorpay/markPaid", json={"orderId": ORDER_ID, "razorpayPaymentId": "pay_9"})

        assert response.status_code == 401

    def test_cancelled_order(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        order_factory: Any,
        db_response: Any,
    ) -> None:
        """Test cancelled orders cannot be marked paid."""
        set_order_lookup(
            mock_supabase_client,
            order_factory(shipping_status="cancelled", payment_status="refund_initiated"),
            db_response,
        )

        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={"orderId": ORDER_ID, "razorpayPaymentId": "pay_9"},
            headers=customer_headers,
        )

        assert response.status_code == 409

    def test_missing_order(
        self,
        client: TestClient,
        mock_supabase_client: MagicMock,
        mock_razorpay_client: MagicMock,
        customer_headers: dict[str, str],
        db_response: Any,
    ) -> None:
        """Test unknown orders are 404."""
        set_order_lookup(mock_supabase_client, None, db_response)

        response = client.post(
            "/api/v1/razorpay/markPaid",
            json={"orderId": ORDER_ID, "razorpayPaymentId": "pay_9"},
            headers=customer_headers,
        )

        assert response.status_code == 404
