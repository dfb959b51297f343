"""Integration tests for the Payment API.

Covers:
- POST /payments/initiate/ and /payments/verify/ for the paying customer.
- Authenticity failures in the standard error format.
- POST /payments/webhook/{provider}/ always answers 200 once processed.
- POST /payments/refund/ is staff only.
"""

from __future__ import annotations

import json

import pytest

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.payments.constants import GatewayOutcome, PaymentStatus
from modules.payments.models import Payment

pytestmark = pytest.mark.integration

INITIATE_URL = "/api/v1/payments/initiate/"
VERIFY_URL = "/api/v1/payments/verify/"
REFUND_URL = "/api/v1/payments/refund/"
WEBHOOK_URL = "/api/v1/payments/webhook/{provider}/"


@pytest.fixture()
def order(place_order, fake_gateway):
    return place_order(PaymentMethod.STRIPE)


def _initiate(client, order) -> dict:
    response = client.post(INITIATE_URL, {"order_id": str(order.id)}, format="json")
    assert response.status_code == 200
    return response.json()


def _verify(client, fake_gateway, order, intent, signature=None):
    return client.post(
        VERIFY_URL,
        {
            "order_id": str(order.id),
            "gateway_payment_id": "pay_api_1",
            "gateway_order_id": intent["gateway_order_id"],
            "signature": signature
            or fake_gateway.sign_callback(intent["gateway_order_id"], "pay_api_1"),
        },
        format="json",
    )


class TestInitiate:
    def test_returns_client_parameters(self, auth_client, order):
        data = _initiate(auth_client, order)

        assert data["order_id"] == str(order.id)
        assert data["amount"] == "185.00"
        assert data["currency"] == "INR"
        assert data["key"] == "pk_fake"
        assert data["client_secret"].endswith("_secret")

    def test_requires_authentication(self, api_client, order):
        response = api_client.post(
            INITIATE_URL, {"order_id": str(order.id)}, format="json"
        )
        assert response.status_code == 401

    def test_other_customers_order_is_404(self, api_client, other_customer, order):
        api_client.force_authenticate(user=other_customer)

        response = api_client.post(
            INITIATE_URL, {"order_id": str(order.id)}, format="json"
        )

        assert response.status_code == 404

    def test_cod_order_is_rejected(self, auth_client, place_order):
        cod = place_order(PaymentMethod.CASH_ON_DELIVERY)

        response = auth_client.post(
            INITIATE_URL, {"order_id": str(cod.id)}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "payment_not_required"


class TestVerify:
    def test_success(self, auth_client, fake_gateway, order):
        intent = _initiate(auth_client, order)

        response = _verify(auth_client, fake_gateway, order, intent)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "order_id": str(order.id),
            "payment_status": PaymentStatus.COMPLETED,
            "order_status": OrderStatus.CONFIRMED,
        }

    def test_bad_signature(self, auth_client, fake_gateway, order):
        intent = _initiate(auth_client, order)

        response = _verify(auth_client, fake_gateway, order, intent, signature="forged")

        assert response.status_code == 400
        body = response.json()
        assert body["type"] == "client_error"
        assert body["errors"][0]["code"] == "authenticity_failed"
        assert Payment.objects.get(order=order).status == PaymentStatus.FAILED

    def test_unsettled_payment_is_409(self, auth_client, fake_gateway, order):
        intent = _initiate(auth_client, order)
        fake_gateway.set_status("pay_api_1", GatewayOutcome.PENDING)

        response = _verify(auth_client, fake_gateway, order, intent)

        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "payment_not_settled"
        assert Payment.objects.get(order=order).status == PaymentStatus.PROCESSING

    def test_missing_payment_id(self, auth_client, order):
        response = auth_client.post(
            VERIFY_URL, {"order_id": str(order.id)}, format="json"
        )
        assert response.status_code == 400


class TestWebhook:
    def test_processed_webhook(self, api_client, fake_gateway, order):
        body = json.dumps(
            {
                "event": "payment.succeeded",
                "payment_id": "pay_hook",
                "order_id": str(order.id),
            }
        ).encode()

        response = api_client.post(
            WEBHOOK_URL.format(provider="stripe"),
            data=body,
            content_type="application/json",
            HTTP_X_FAKE_SIGNATURE=fake_gateway.sign_webhook(body),
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED

    def test_bad_signature_still_acknowledged(self, api_client, order):
        body = json.dumps({"event": "payment.succeeded", "order_id": str(order.id)})

        response = api_client.post(
            WEBHOOK_URL.format(provider="stripe"),
            data=body,
            content_type="application/json",
            HTTP_X_FAKE_SIGNATURE="nope",
        )

        assert response.status_code == 200
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_unknown_provider(self, api_client):
        response = api_client.post(
            WEBHOOK_URL.format(provider="paypal"),
            data="{}",
            content_type="application/json",
        )
        assert response.status_code == 404


class TestRefund:
    def test_customer_forbidden(self, auth_client, order):
        response = auth_client.post(
            REFUND_URL, {"order_id": str(order.id)}, format="json"
        )
        assert response.status_code == 403

    def test_staff_refund(self, auth_client, staff_client, fake_gateway, order):
        intent = _initiate(auth_client, order)
        _verify(auth_client, fake_gateway, order, intent)

        response = staff_client.post(
            REFUND_URL, {"order_id": str(order.id), "reason": "Late"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["refund_amount"] == "185.00"
        assert data["order_status"] == OrderStatus.REFUNDED

    def test_pending_payment_cannot_be_refunded(self, staff_client, order):
        response = staff_client.post(
            REFUND_URL, {"order_id": str(order.id)}, format="json"
        )

        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "refund_not_allowed"
