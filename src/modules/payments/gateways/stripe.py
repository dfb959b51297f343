"""Stripe adapter (PaymentIntents) on top of the official ``stripe`` SDK.

The API key is passed per request; the SDK's module-level key is never set.
The intent id doubles as ``gateway_order_id`` and ``gateway_payment_id``.
The order id travels in the intent metadata so webhooks can be matched
without a local lookup by intent id.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional, Union

import stripe
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
    to_minor_units,
)

logger = structlog.get_logger(__name__)

INTENT_STATUS_OUTCOMES = {
    "succeeded": GatewayOutcome.SUCCEEDED,
    "canceled": GatewayOutcome.FAILED,
    "requires_payment_method": GatewayOutcome.FAILED,
}

WEBHOOK_EVENTS = {
    "payment_intent.succeeded": GatewayOutcome.SUCCEEDED,
    "payment_intent.payment_failed": GatewayOutcome.FAILED,
    "payment_intent.canceled": GatewayOutcome.FAILED,
}


class StripeGateway(PaymentGateway):
    provider = "stripe"
    signature_header = "Stripe-Signature"

    def __init__(
        self,
        secret_key: str = "",
        publishable_key: str = "",
        webhook_secret: str = "",
        tolerance: int = 300,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.secret_key = secret_key
        self.publishable_key = publishable_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def create_intent(self, order: Any, payment: Any) -> GatewayIntent:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=to_minor_units(payment.amount),
                currency=payment.currency.lower(),
                metadata={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                },
                idempotency_key=f"intent-{payment.id}",
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("create_intent", exc) from exc

        return GatewayIntent(
            gateway_order_id=_field(intent, "id"),
            amount=Decimal(payment.amount),
            currency=payment.currency,
            client_secret=_field(intent, "client_secret") or "",
            publishable_key=self.publishable_key,
        )

    def verify_signature(
        self, payload: Union[bytes, str], signature: str, secret: str
    ) -> bool:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            return stripe.WebhookSignature.verify_header(
                payload, signature, secret, self.tolerance
            )
        except stripe.SignatureVerificationError:
            return False

    def fetch_status(self, gateway_payment_id: str) -> GatewayStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(
                gateway_payment_id, api_key=self.secret_key
            )
        except stripe.InvalidRequestError as exc:
            raise AuthenticityFailed(
                "Unknown payment intent.", gateway_payment_id=gateway_payment_id
            ) from exc
        except stripe.StripeError as exc:
            raise self._gateway_error("fetch_status", exc) from exc
        return self._status_from_intent(intent)

    def refund(
        self,
        gateway_payment_id: str,
        amount: Decimal,
        reason: str = "",
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                api_key=self.secret_key,
                payment_intent=gateway_payment_id,
                amount=to_minor_units(amount),
                reason="requested_by_customer",
                metadata={"reason": reason[:500]} if reason else {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("refund", exc) from exc
        return RefundResult(
            refund_id=_field(refund, "id"),
            amount=from_minor_units(_field(refund, "amount", 0)),
            status=_field(refund, "status") or "",
        )

    def verify_client_callback(self, evidence: PaymentEvidence) -> PaymentEvidence:
        """Stripe has no client-side signature: ask Stripe for the intent."""
        status = self.fetch_status(evidence.gateway_payment_id)
        if status.order_id != str(evidence.order_id):
            raise AuthenticityFailed(
                "Payment intent does not belong to this order.",
                gateway_payment_id=evidence.gateway_payment_id,
            )
        return evidence.with_outcome(
            status.outcome,
            gateway_order_id=status.gateway_order_id,
            failure_reason=status.failure_reason,
        )

    def parse_webhook(self, body: bytes, headers: Mapping[str, str]) -> PaymentEvidence:
        if not self.webhook_secret:
            raise GatewayUnavailable("Stripe webhook secret is not configured.")
        signature = headers.get(self.signature_header, "")
        try:
            event = stripe.Webhook.construct_event(
                body, signature, self.webhook_secret, self.tolerance
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise AuthenticityFailed("Invalid webhook signature.") from exc

        event_type = _field(event, "type")
        outcome = WEBHOOK_EVENTS.get(event_type)
        if outcome is None:
            return PaymentEvidence(
                signature=signature,
                outcome=GatewayOutcome.PENDING,
                event_type=event_type,
            )
        status = self._status_from_intent(_field(_field(event, "data"), "object"))
        return PaymentEvidence(
            gateway_payment_id=status.gateway_payment_id,
            gateway_order_id=status.gateway_order_id,
            order_id=status.order_id,
            signature=signature,
            outcome=outcome,
            failure_reason=status.failure_reason,
            event_type=event_type,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _status_from_intent(intent: Any) -> GatewayStatus:
        raw_status = _field(intent, "status") or ""
        metadata = _field(intent, "metadata") or {}
        last_error = _field(intent, "last_payment_error") or {}
        outcome = INTENT_STATUS_OUTCOMES.get(raw_status, GatewayOutcome.PENDING)
        reason = ""
        if outcome == GatewayOutcome.FAILED:
            reason = _field(last_error, "message") or f"Payment status: {raw_status}"
        return GatewayStatus(
            gateway_payment_id=_field(intent, "id"),
            outcome=outcome,
            raw_status=raw_status,
            gateway_order_id=_field(intent, "id"),
            order_id=_field(metadata, "order_id"),
            failure_reason=reason,
        )

    def _gateway_error(self, operation: str, exc: Exception) -> GatewayError:
        logger.warning(
            "gateway.request_failed",
            provider=self.provider,
            operation=operation,
            error=str(exc),
        )
        return GatewayError(
            f"Stripe {operation} failed.", provider=self.provider, operation=operation
        )


def _field(obj: Any, name: str, default: Any = "") -> Any:
    """Read ``name`` from a Stripe object or a plain mapping."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)
