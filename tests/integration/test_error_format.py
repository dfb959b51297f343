"""Integration tests for standardized error responses."""

import pytest

pytestmark = pytest.mark.integration


class TestStandardizedErrors:
    def test_auth_error_has_standard_format(self, api_client):
        response = api_client.get("/api/v1/orders/")
        assert response.status_code == 401
        data = response.json()
        assert "type" in data
        assert "errors" in data
        assert isinstance(data["errors"], list)
        assert data["errors"]
        assert "code" in data["errors"][0]
        assert "detail" in data["errors"][0]

    def test_validation_error_has_standard_format(self, auth_client):
        response = auth_client.post(
            "/api/v1/orders/", data="{", content_type="application/json"
        )
        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "client_error"
        assert isinstance(data["errors"], list)

    def test_field_errors_name_the_attribute(self, auth_client):
        response = auth_client.post("/api/v1/orders/", {}, format="json")
        assert response.status_code == 400
        attrs = {error["attr"] for error in response.json()["errors"]}
        assert {"address_id", "payment_method"} <= attrs

    def test_domain_error_carries_code(self, auth_client):
        response = auth_client.get(
            "/api/v1/orders/00000000-0000-0000-0000-000000000000/"
        )
        assert response.status_code == 404
        data = response.json()
        assert data["type"] == "client_error"
        assert data["errors"][0]["code"] == "order_not_found"
        assert data["errors"][0]["attr"] is None

    def test_retryable_error_is_503(
        self, auth_client, customer, address, fill_cart, milk
    ):
        from modules.payments.gateways import reset_gateways, set_gateway
        from modules.payments.gateways.fake import FakeGateway

        fill_cart(customer, (milk, 1))
        set_gateway("STRIPE", FakeGateway(secret=""))
        try:
            response = auth_client.post(
                "/api/v1/orders/",
                {"address_id": str(address.id), "payment_method": "STRIPE"},
                format="json",
            )
        finally:
            reset_gateways()

        assert response.status_code == 503
        assert response.json()["errors"][0]["code"] == "gateway_unavailable"
        assert response["Retry-After"] == "2"
