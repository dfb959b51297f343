"""Deterministic in-process gateway for development and tests.

Signs with HMAC-SHA256 exactly like a real provider so the reconciler's
authenticity checks run unchanged:

- client callbacks: ``hmac(secret, "<gateway_order_id>|<gateway_payment_id>")``
- webhooks: ``hmac(webhook_secret, raw_body)`` in ``X-Fake-Signature``

Webhook body::

    {"event": "payment.succeeded" | "payment.failed" | "payment.pending",
     "payment_id": "...", "gateway_order_id": "...", "order_id": "...",
     "failure_reason": "..."}
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from modules.payments.constants import GatewayOutcome
from modules.payments.exceptions import AuthenticityFailed, GatewayError
from modules.payments.gateways.base import (
    GatewayIntent,
    GatewayStatus,
    PaymentEvidence,
    PaymentGateway,
    RefundResult,
    hmac_sha256_hex,
    signatures_match,
)

WEBHOOK_EVENTS = {
    "payment.succeeded": GatewayOutcome.SUCCEEDED,
    "payment.failed": GatewayOutcome.FAILED,
    "payment.pending": GatewayOutcome.PENDING,
}


class FakeGateway(PaymentGateway):
    """Records every call in ``calls``; ``configure()`` scripts failures."""

    signature_header = "X-Fake-Signature"

    def __init__(
        self,
        provider: str = "fake",
        secret: str = "fake-client-secret",
        webhook_secret: str = "fake-webhook-secret",
        publishable_key: str = "pk_fake",
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.provider = provider
        self.secret = secret
        self.webhook_secret = webhook_secret
        self.publishable_key = publishable_key
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.statuses: Dict[str, str] = {}
        self.should_fail = False
        self.failure_message = "Gateway unavailable"
        self._refund_counter = 0

    def configure(
        self, *, should_fail: bool = False, failure_message: str = ""
    ) -> None:
        self.should_fail = should_fail
        if failure_message:
            self.failure_message = failure_message

    def is_configured(self) -> bool:
        return bool(self.secret and self.webhook_secret)

    # ------------------------------------------------------------------
    # Signing helpers used by tests and local tooling
    # ------------------------------------------------------------------

    def sign_callback(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        return hmac_sha256_hex(self.secret, f"{gateway_order_id}|{gateway_payment_id}")

    def sign_webhook(self, body: Union[bytes, str]) -> str:
        return hmac_sha256_hex(self.webhook_secret, body)

    def set_status(self, gateway_payment_id: str, outcome: str) -> None:
        self.statuses[gateway_payment_id] = outcome

    # ------------------------------------------------------------------
    # PaymentGateway
    # ------------------------------------------------------------------

    def create_intent(self, order: Any, payment: Any) -> GatewayIntent:
        self._record("create_intent", order_id=str(order.id), amount=payment.amount)
        gateway_order_id = f"{self.provider}_order_{order.order_number}"
        return GatewayIntent(
            gateway_order_id=gateway_order_id,
            amount=Decimal(payment.amount),
            currency=payment.currency,
            client_secret=f"{gateway_order_id}_secret",
            publishable_key=self.publishable_key,
        )

    def verify_signature(
        self, payload: Union[bytes, str], signature: str, secret: str
    ) -> bool:
        return signatures_match(hmac_sha256_hex(secret, payload), signature)

    def fetch_status(self, gateway_payment_id: str) -> GatewayStatus:
        self._record("fetch_status", gateway_payment_id=gateway_payment_id)
        outcome = self.statuses.get(gateway_payment_id, GatewayOutcome.SUCCEEDED)
        return GatewayStatus(
            gateway_payment_id=gateway_payment_id,
            outcome=outcome,
            raw_status=str(outcome).lower(),
        )

    def refund(
        self,
        gateway_payment_id: str,
        amount: Decimal,
        reason: str = "",
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        self._record(
            "refund",
            gateway_payment_id=gateway_payment_id,
            amount=amount,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        self._refund_counter += 1
        return RefundResult(
            refund_id=f"rfnd_{gateway_payment_id}_{self._refund_counter}",
            amount=Decimal(amount),
            status="processed",
        )

    def verify_client_callback(self, evidence: PaymentEvidence) -> PaymentEvidence:
        self._record(
            "verify_client_callback", gateway_payment_id=evidence.gateway_payment_id
        )
        payload = f"{evidence.gateway_order_id}|{evidence.gateway_payment_id}"
        if not self.verify_signature(payload, evidence.signature, self.secret):
            raise AuthenticityFailed("Payment signature verification failed.")
        outcome = self.statuses.get(
            evidence.gateway_payment_id, GatewayOutcome.SUCCEEDED
        )
        reason = "Payment declined" if outcome == GatewayOutcome.FAILED else ""
        return evidence.with_outcome(outcome, failure_reason=reason)

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> PaymentEvidence:
        signature = headers.get(self.signature_header, "")
        if not self.verify_signature(body, signature, self.webhook_secret):
            raise AuthenticityFailed("Invalid webhook signature.")
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise AuthenticityFailed("Webhook body is not valid JSON.") from exc

        event = data.get("event", "")
        return PaymentEvidence(
            gateway_payment_id=data.get("payment_id", ""),
            gateway_order_id=data.get("gateway_order_id", ""),
            order_id=data.get("order_id", ""),
            signature=signature,
            outcome=WEBHOOK_EVENTS.get(event, GatewayOutcome.PENDING),
            failure_reason=data.get("failure_reason", ""),
            event_type=event,
        )

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if self.should_fail:
            raise GatewayError(self.failure_message, provider=self.provider)
