"""Integration tests for POST /api/v1/shipping/quote."""

from fastapi.testclient import TestClient

URL = "/api/v1/shipping/quote"


class TestShippingQuote:
    """Tests for shipping quotes."""

    def test_quote_by_weight(self, client: TestClient) -> None:
        """Test a 1 kg parcel to New Delhi."""
        response = client.post(URL, json={"pincode": "110001", "weightKg": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["cost"] == 70
        assert data["rateCost"] == 70
        assert data["zone"] == "ncr"
        assert data["isNcr"] is True
        assert data["deliveryEstimate"] == "3-4 Days"
        assert data["freeShippingApplied"] is False
        assert data["destination"]["district"] == "NEW DELHI"

    def test_quote_by_items(self, client: TestClient) -> None:
        """Test cart weight is summed from items."""
        response = client.post(
            URL,
            json={"pincode": "273001", "items": [{"weight": 0.3, "quantity": 2}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["totalWeightKg"] == 0.6
        assert data["cost"] == 45
        assert data["isLocal"] is True

    def test_free_shipping(self, client: TestClient) -> None:
        """Test subtotals above the threshold ship free."""
        response = client.post(URL, json={"pincode": "110001", "weightKg": 1, "subtotal": 600})

        assert response.status_code == 200
        data = response.json()
        assert data["cost"] == 0
        assert data["rateCost"] == 70
        assert data["freeShippingApplied"] is True

    def test_threshold_is_exclusive(self, client: TestClient) -> None:
        """Test a subtotal equal to the threshold still pays shipping."""
        response = client.post(URL, json={"pincode": "110001", "weightKg": 1, "subtotal": 499})

        assert response.json()["cost"] == 70

    def test_invalid_pincode(self, client: TestClient) -> None:
        """Test malformed pincodes are a 400."""
        response = client.post(URL, json={"pincode": "11000", "weightKg": 1})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid pincode - must be 6 digits"

    def test_unknown_pincode(self, client: TestClient) -> None:
        """Test pincodes outside the directory are a 404."""
        response = client.post(URL, json={"pincode": "999999", "weightKg": 1})

        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "not_found"
        assert data["message"] == "Pincode not found in our database"

    def test_invalid_weight(self, client: TestClient) -> None:
        """Test non-positive weights are a 400."""
        response = client.post(URL, json={"pincode": "110001", "weightKg": -1})

        assert response.status_code == 400

    def test_requires_weight_or_items(self, client: TestClient) -> None:
        """Test a quote needs something to weigh."""
        response = client.post(URL, json={"pincode": "110001"})

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["weightKg"]
