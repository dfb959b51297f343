"""Unit tests for the payment gateway adapters and registry.

Covers:
- Signing helpers (minor units, constant-time comparison).
- FakeGateway: callback and webhook signatures, scripted failures.
- RazorpayGateway: REST calls via ``requests`` (mocked), HMAC checks.
- StripeGateway: SDK calls (mocked), webhook signature header.
- GatewayRegistry: lookup, overrides, availability.
"""

from __future__ import annotations

import json
import time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests
import stripe

from modules.payments.constants import GatewayOutcome
from modules.payments.exceptions import (
    AuthenticityFailed,
    GatewayError,
    GatewayUnavailable,
    UnknownPaymentProvider,
)
from modules.payments.gateways import GatewayRegistry, reset_gateways, set_gateway
from modules.payments.gateways.base import (
    PaymentEvidence,
    from_minor_units,
    hmac_sha256_hex,
    signatures_match,
    to_minor_units,
)
from modules.payments.gateways.fake import FakeGateway
from modules.payments.gateways.razorpay import RazorpayGateway
from modules.payments.gateways.stripe import StripeGateway

pytestmark = pytest.mark.unit


def _order_and_payment(amount: str = "185.50"):
    order = SimpleNamespace(id="7f1c", order_number="QC-20260101-ABC123")
    payment = SimpleNamespace(id="p-1", amount=Decimal(amount), currency="INR")
    return order, payment


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_minor_units(self):
        assert to_minor_units(Decimal("185.50")) == 18550
        assert to_minor_units(Decimal("0.005")) == 1
        assert from_minor_units(18550) == Decimal("185.50")

    def test_signatures_match(self):
        signature = hmac_sha256_hex("secret", "a|b")
        assert signatures_match(signature, signature)
        assert not signatures_match(signature, signature.upper())

    def test_empty_signatures_never_match(self):
        assert not signatures_match("", "")
        assert not signatures_match(hmac_sha256_hex("s", "x"), "")


# ---------------------------------------------------------------------------
# FakeGateway
# ---------------------------------------------------------------------------


class TestFakeGateway:
    def test_callback_round_trip(self):
        gateway = FakeGateway()
        evidence = PaymentEvidence(
            gateway_payment_id="pay_1",
            gateway_order_id="fake_order_1",
            signature=gateway.sign_callback("fake_order_1", "pay_1"),
        )

        verified = gateway.verify_client_callback(evidence)

        assert verified.outcome == GatewayOutcome.SUCCEEDED

    def test_callback_signed_for_another_order(self):
        gateway = FakeGateway()
        evidence = PaymentEvidence(
            gateway_payment_id="pay_1",
            gateway_order_id="fake_order_2",
            signature=gateway.sign_callback("fake_order_1", "pay_1"),
        )

        with pytest.raises(AuthenticityFailed):
            gateway.verify_client_callback(evidence)

    def test_webhook_requires_signature_header(self):
        gateway = FakeGateway()
        body = b'{"event": "payment.succeeded", "payment_id": "pay_1"}'

        with pytest.raises(AuthenticityFailed):
            gateway.parse_webhook(body, {})

        evidence = gateway.parse_webhook(
            body, {"X-Fake-Signature": gateway.sign_webhook(body)}
        )
        assert evidence.gateway_payment_id == "pay_1"
        assert evidence.is_terminal

    def test_scripted_failure(self):
        gateway = FakeGateway()
        gateway.configure(should_fail=True, failure_message="down")

        with pytest.raises(GatewayError, match="down"):
            gateway.create_intent(*_order_and_payment())

    def test_unconfigured_without_secrets(self):
        assert not FakeGateway(secret="").is_configured()


# ---------------------------------------------------------------------------
# RazorpayGateway
# ---------------------------------------------------------------------------


@pytest.fixture()
def razorpay():
    return RazorpayGateway(key_id="rzp_test", key_secret="shh", webhook_secret="hook")


def _response(ok=True, status_code=200, payload=None):
    response = MagicMock(ok=ok, status_code=status_code, text=json.dumps(payload or {}))
    response.json.return_value = payload or {}
    return response


class TestRazorpayGateway:
    def test_create_intent_posts_order(self, razorpay):
        with patch(
            "modules.payments.gateways.razorpay.requests.request",
            return_value=_response(payload={"id": "order_Rz1"}),
        ) as request:
            intent = razorpay.create_intent(*_order_and_payment())

        assert intent.gateway_order_id == "order_Rz1"
        assert intent.publishable_key == "rzp_test"
        method, url = request.call_args.args
        assert (method, url) == ("POST", "https://api.razorpay.com/v1/orders")
        assert request.call_args.kwargs["json"]["amount"] == 18550
        assert request.call_args.kwargs["auth"] == ("rzp_test", "shh")

    def test_rejected_call(self, razorpay):
        with patch(
            "modules.payments.gateways.razorpay.requests.request",
            return_value=_response(ok=False, status_code=400),
        ):
            with pytest.raises(GatewayError):
                razorpay.fetch_status("pay_1")

    def test_network_error(self, razorpay):
        with patch(
            "modules.payments.gateways.razorpay.requests.request",
            side_effect=requests.ConnectionError("boom"),
        ):
            with pytest.raises(GatewayError):
                razorpay.refund("pay_1", Decimal("10.00"))

    def test_refund(self, razorpay):
        with patch(
            "modules.payments.gateways.razorpay.requests.request",
            return_value=_response(
                payload={"id": "rfnd_1", "amount": 1000, "status": "processed"}
            ),
        ) as request:
            result = razorpay.refund("pay_1", Decimal("10.00"), idempotency_key="k")

        assert result.refund_id == "rfnd_1"
        assert result.amount == Decimal("10.00")
        assert request.call_args.kwargs["json"]["notes"]["idempotency_key"] == "k"

    def test_client_callback_signature(self, razorpay):
        evidence = PaymentEvidence(
            gateway_payment_id="pay_1",
            gateway_order_id="order_Rz1",
            signature=hmac_sha256_hex("shh", "order_Rz1|pay_1"),
        )

        verified = razorpay.verify_client_callback(evidence)
        assert verified.outcome == GatewayOutcome.SUCCEEDED
        with pytest.raises(AuthenticityFailed):
            razorpay.verify_client_callback(evidence.with_outcome("", signature="bad"))

    def test_webhook_captured(self, razorpay):
        body = json.dumps(
            {
                "event": "payment.captured",
                "payload": {
                    "payment": {
                        "entity": {
                            "id": "pay_1",
                            "order_id": "order_Rz1",
                            "status": "captured",
                            "notes": {"order_id": "7f1c"},
                        }
                    }
                },
            }
        ).encode()
        headers = {"X-Razorpay-Signature": hmac_sha256_hex("hook", body)}

        evidence = razorpay.parse_webhook(body, headers)

        assert evidence.outcome == GatewayOutcome.SUCCEEDED
        assert evidence.gateway_order_id == "order_Rz1"
        assert evidence.order_id == "7f1c"

    def test_webhook_signed_over_raw_body(self, razorpay):
        body = b'{"event": "payment.captured"}'
        reserialised = json.dumps(json.loads(body), separators=(",", ":")).encode()
        headers = {"X-Razorpay-Signature": hmac_sha256_hex("hook", reserialised)}

        with pytest.raises(AuthenticityFailed):
            razorpay.parse_webhook(body, headers)

    def test_webhook_with_null_payment_is_pending(self, razorpay):
        body = json.dumps(
            {"event": "payment.captured", "payload": {"payment": None}}
        ).encode()
        headers = {"X-Razorpay-Signature": hmac_sha256_hex("hook", body)}

        evidence = razorpay.parse_webhook(body, headers)

        assert evidence.outcome == GatewayOutcome.PENDING
        assert evidence.event_type == "payment.captured"

    def test_unhandled_event_is_pending(self, razorpay):
        body = b'{"event": "order.paid"}'
        headers = {"X-Razorpay-Signature": hmac_sha256_hex("hook", body)}

        assert not razorpay.parse_webhook(body, headers).is_terminal

    def test_unconfigured(self):
        with pytest.raises(GatewayUnavailable):
            RazorpayGateway().fetch_status("pay_1")


# ---------------------------------------------------------------------------
# StripeGateway
# ---------------------------------------------------------------------------


@pytest.fixture()
def stripe_gateway():
    return StripeGateway(
        secret_key="sk_test", publishable_key="pk_test", webhook_secret="whsec"
    )


def _stripe_header(payload: str, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac_sha256_hex(secret, f"{timestamp}.{payload}")
    return f"t={timestamp},v1={signature}"


class TestStripeGateway:
    def test_create_intent(self, stripe_gateway):
        intent_obj = {"id": "pi_1", "client_secret": "pi_1_secret"}
        with patch.object(
            stripe.PaymentIntent, "create", return_value=intent_obj
        ) as create:
            intent = stripe_gateway.create_intent(*_order_and_payment())

        assert intent.gateway_order_id == "pi_1"
        assert intent.client_secret == "pi_1_secret"
        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test"
        assert kwargs["amount"] == 18550
        assert kwargs["currency"] == "inr"
        assert kwargs["metadata"]["order_id"] == "7f1c"
        assert kwargs["idempotency_key"] == "intent-p-1"

    def test_sdk_error_becomes_gateway_error(self, stripe_gateway):
        with patch.object(
            stripe.PaymentIntent,
            "create",
            side_effect=stripe.APIConnectionError("down"),
        ):
            with pytest.raises(GatewayError):
                stripe_gateway.create_intent(*_order_and_payment())

    def test_client_callback_queries_intent(self, stripe_gateway):
        intent_obj = {
            "id": "pi_1",
            "status": "succeeded",
            "metadata": {"order_id": "7f1c"},
        }
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent_obj):
            evidence = stripe_gateway.verify_client_callback(
                PaymentEvidence(order_id="7f1c", gateway_payment_id="pi_1")
            )

        assert evidence.outcome == GatewayOutcome.SUCCEEDED
        assert evidence.gateway_order_id == "pi_1"

    def test_client_callback_for_another_order(self, stripe_gateway):
        intent_obj = {
            "id": "pi_1",
            "status": "succeeded",
            "metadata": {"order_id": "other"},
        }
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent_obj):
            with pytest.raises(AuthenticityFailed):
                stripe_gateway.verify_client_callback(
                    PaymentEvidence(order_id="7f1c", gateway_payment_id="pi_1")
                )

    def test_failed_intent_reason(self, stripe_gateway):
        intent_obj = {
            "id": "pi_1",
            "status": "requires_payment_method",
            "metadata": {"order_id": "7f1c"},
            "last_payment_error": {"message": "Your card was declined."},
        }
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent_obj):
            status = stripe_gateway.fetch_status("pi_1")

        assert status.outcome == GatewayOutcome.FAILED
        assert status.failure_reason == "Your card was declined."

    def test_verify_signature(self, stripe_gateway):
        payload = '{"id": "evt_1"}'

        signed = _stripe_header(payload, "whsec")
        assert stripe_gateway.verify_signature(payload, signed, "whsec")
        assert not stripe_gateway.verify_signature(
            payload, _stripe_header(payload, "other"), "whsec"
        )
        stale = _stripe_header(payload, "whsec", timestamp=int(time.time()) - 3600)
        assert not stripe_gateway.verify_signature(payload, stale, "whsec")

    def test_webhook_succeeded(self, stripe_gateway):
        event = {
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_1",
                    "status": "succeeded",
                    "metadata": {"order_id": "7f1c"},
                }
            },
        }
        with patch.object(
            stripe.Webhook, "construct_event", return_value=event
        ) as construct:
            evidence = stripe_gateway.parse_webhook(
                b"{}", {"Stripe-Signature": "t=1,v1=x"}
            )

        assert evidence.outcome == GatewayOutcome.SUCCEEDED
        assert evidence.order_id == "7f1c"
        assert construct.call_args.args[1:3] == ("t=1,v1=x", "whsec")

    def test_webhook_bad_signature(self, stripe_gateway):
        with patch.object(
            stripe.Webhook,
            "construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=x"),
        ):
            with pytest.raises(AuthenticityFailed):
                stripe_gateway.parse_webhook(b"{}", {"Stripe-Signature": "t=1,v1=x"})

    def test_webhook_without_secret(self):
        with pytest.raises(GatewayUnavailable):
            StripeGateway(secret_key="sk_test").parse_webhook(b"{}", {})


# ---------------------------------------------------------------------------
# GatewayRegistry
# ---------------------------------------------------------------------------


class TestGatewayRegistry:
    CONFIG = {
        "STRIPE": {
            "BACKEND": "modules.payments.gateways.stripe.StripeGateway",
            "OPTIONS": {"secret_key": "sk_test"},
        },
        "RAZORPAY": {
            "BACKEND": "modules.payments.gateways.razorpay.RazorpayGateway",
            "OPTIONS": {},
        },
    }

    def test_builds_configured_backend(self):
        gateway = GatewayRegistry(self.CONFIG).get("STRIPE")
        assert isinstance(gateway, StripeGateway)

    def test_unconfigured_backend_is_unavailable(self):
        with pytest.raises(GatewayUnavailable):
            GatewayRegistry(self.CONFIG).get("RAZORPAY")

    def test_unregistered_method(self):
        with pytest.raises(GatewayUnavailable):
            GatewayRegistry({}).get("STRIPE")

    def test_for_provider(self):
        method, gateway = GatewayRegistry(self.CONFIG).for_provider("stripe")
        assert method == "STRIPE"
        assert gateway.provider == "stripe"

        with pytest.raises(UnknownPaymentProvider):
            GatewayRegistry(self.CONFIG).for_provider("paypal")

    def test_availability(self):
        assert GatewayRegistry(self.CONFIG).availability() == {
            "RAZORPAY": False,
            "STRIPE": True,
        }

    def test_override_wins(self):
        fake = FakeGateway(provider="stripe")
        set_gateway("STRIPE", fake)
        try:
            assert GatewayRegistry({}).get("STRIPE") is fake
        finally:
            reset_gateways()
