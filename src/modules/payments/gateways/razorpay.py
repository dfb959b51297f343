"""Razorpay adapter over the REST API (``requests``, HTTP basic auth).

Signatures:

- checkout callback: ``hmac_sha256(key_secret, "<order_id>|<payment_id>")``
- webhook: ``hmac_sha256(webhook_secret, raw_body)`` in
  ``X-Razorpay-Signature``; computed over the raw bytes, never over a
  re-serialised body.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union

import requests
import structlog

from modules.payments.constants import GatewayOutcome
from modules.payments.exceptions import (
    AuthenticityFailed,
    GatewayError,
    GatewayUnavailable,
)
from modules.payments.gateways.base import (
    GatewayIntent,
    GatewayStatus,
    PaymentEvidence,
    PaymentGateway,
    RefundResult,
    from_minor_units,
    hmac_sha256_hex,
    signatures_match,
    to_minor_units,
)

logger = structlog.get_logger(__name__)

API_BASE_URL = "https://api.razorpay.com/v1"

PAYMENT_STATUS_OUTCOMES = {
    "captured": GatewayOutcome.SUCCEEDED,
    "failed": GatewayOutcome.FAILED,
}

WEBHOOK_EVENTS = {
    "payment.captured": GatewayOutcome.SUCCEEDED,
    "payment.failed": GatewayOutcome.FAILED,
}


class RazorpayGateway(PaymentGateway):
    provider = "razorpay"
    signature_header = "X-Razorpay-Signature"

    def __init__(
        self,
        key_id: str = "",
        key_secret: str = "",
        webhook_secret: str = "",
        timeout: int = 10,
        base_url: str = API_BASE_URL,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_intent(self, order: Any, payment: Any) -> GatewayIntent:
        data = self._request(
            "POST",
            "/orders",
            "create_intent",
            json={
                "amount": to_minor_units(payment.amount),
                "currency": payment.currency,
                "receipt": order.order_number,
                "notes": {"order_id": str(order.id)},
            },
        )
        return GatewayIntent(
            gateway_order_id=data["id"],
            amount=Decimal(payment.amount),
            currency=payment.currency,
            publishable_key=self.key_id,
        )

    def verify_signature(
        self, payload: Union[bytes, str], signature: str, secret: str
    ) -> bool:
        return signatures_match(hmac_sha256_hex(secret, payload), signature)

    def fetch_status(self, gateway_payment_id: str) -> GatewayStatus:
        data = self._request("GET", f"/payments/{gateway_payment_id}", "fetch_status")
        return self._status_from_entity(data)

    def refund(
        self,
        gateway_payment_id: str,
        amount: Decimal,
        reason: str = "",
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        notes: Dict[str, str] = {"reason": reason or "Customer request"}
        if idempotency_key:
            notes["idempotency_key"] = idempotency_key
        data = self._request(
            "POST",
            f"/payments/{gateway_payment_id}/refund",
            "refund",
            json={"amount": to_minor_units(amount), "notes": notes},
        )
        return RefundResult(
            refund_id=data["id"],
            amount=from_minor_units(data.get("amount", to_minor_units(amount))),
            status=data.get("status", ""),
        )

    def verify_client_callback(self, evidence: PaymentEvidence) -> PaymentEvidence:
        if not self.key_secret:
            raise GatewayUnavailable("Razorpay is not configured.")
        payload = f"{evidence.gateway_order_id}|{evidence.gateway_payment_id}"
        if not self.verify_signature(payload, evidence.signature, self.key_secret):
            raise AuthenticityFailed("Payment signature verification failed.")
        return evidence.with_outcome(GatewayOutcome.SUCCEEDED)

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> PaymentEvidence:
        if not self.webhook_secret:
            raise GatewayUnavailable("Razorpay webhook secret is not configured.")
        signature = headers.get(self.signature_header, "")
        if not self.verify_signature(body, signature, self.webhook_secret):
            raise AuthenticityFailed("Invalid webhook signature.")
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise AuthenticityFailed("Webhook body is not valid JSON.") from exc

        event_type = data.get("event", "")
        entity = ((data.get("payload") or {}).get("payment") or {}).get("entity")
        outcome = WEBHOOK_EVENTS.get(event_type)
        if outcome is None or not entity:
            return PaymentEvidence(
                signature=signature,
                outcome=GatewayOutcome.PENDING,
                event_type=event_type,
            )
        status = self._status_from_entity(entity)
        return PaymentEvidence(
            gateway_payment_id=status.gateway_payment_id,
            gateway_order_id=status.gateway_order_id,
            order_id=status.order_id,
            signature=signature,
            outcome=outcome,
            failure_reason=status.failure_reason or (
                "Payment failed" if outcome == GatewayOutcome.FAILED else ""
            ),
            event_type=event_type,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _status_from_entity(entity: Mapping[str, Any]) -> GatewayStatus:
        raw_status = entity.get("status") or ""
        notes = entity.get("notes") or {}
        return GatewayStatus(
            gateway_payment_id=entity.get("id", ""),
            outcome=PAYMENT_STATUS_OUTCOMES.get(raw_status, GatewayOutcome.PENDING),
            raw_status=raw_status,
            gateway_order_id=entity.get("order_id") or "",
            order_id=notes.get("order_id", "") if isinstance(notes, dict) else "",
            failure_reason=entity.get("error_description") or "",
        )

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        if not self.is_configured():
            raise GatewayUnavailable("Razorpay is not configured.")
        log = logger.bind(provider=self.provider, operation=operation)
        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            log.warning("gateway.request_failed", error=str(exc))
            raise GatewayError(
                f"Razorpay {operation} failed.", provider=self.provider
            ) from exc

        if not response.ok:
            log.warning(
                "gateway.request_rejected",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise GatewayError(
                f"Razorpay {operation} rejected ({response.status_code}).",
                provider=self.provider,
                status_code=response.status_code,
            )
        return response.json()
