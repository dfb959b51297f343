"""Payment DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``InitiatePaymentDTO``: input for ``POST /payments/initiate/``.
- ``VerifyPaymentDTO``: client-submitted gateway evidence.
- ``RefundDTO``: administrative refund request.
- ``PaymentIntentDTO`` / ``ReconcileOutputDTO`` / ``RefundOutputDTO``: outputs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from modules.payments.gateways.base import GatewayIntent
    from modules.payments.services import ReconcileResult, RefundOutcome


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class InitiatePaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID


class VerifyPaymentDTO(BaseModel):
    """Evidence the client received from the gateway checkout widget.

    ``signature`` is required for HMAC-signing providers; providers that
    are verified by querying the gateway ignore it.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    order_id: UUID
    gateway_payment_id: str
    gateway_order_id: str = ""
    signature: str = ""

    @field_validator("gateway_payment_id")
    @classmethod
    def payment_id_required(cls, v: str) -> str:
        if not v:
            raise ValueError("gateway_payment_id is required.")
        return v


class RefundDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    amount: Optional[Decimal] = None
    reason: str = ""

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v <= 0:
            raise ValueError("Refund amount must be positive.")
        return v


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class PaymentIntentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    gateway_order_id: str
    client_secret: str
    key: str
    amount: Decimal
    currency: str

    @classmethod
    def from_intent(cls, order_id: UUID, intent: GatewayIntent) -> PaymentIntentDTO:
        return cls(
            order_id=order_id,
            gateway_order_id=intent.gateway_order_id,
            client_secret=intent.client_secret,
            key=intent.publishable_key,
            amount=intent.amount,
            currency=intent.currency,
        )


class ReconcileOutputDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: UUID
    payment_status: str
    order_status: str

    @classmethod
    def from_result(cls, result: ReconcileResult) -> ReconcileOutputDTO:
        return cls(
            success=result.success,
            order_id=result.order_id,
            payment_status=result.payment_status,
            order_status=result.order_status,
        )


class RefundOutputDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: UUID
    refund_id: str
    refund_amount: Decimal
    order_status: str

    @classmethod
    def from_outcome(cls, outcome: RefundOutcome) -> RefundOutputDTO:
        return cls(
            success=True,
            order_id=outcome.order_id,
            refund_id=outcome.refund_id,
            refund_amount=outcome.amount,
            order_status=outcome.order_status,
        )
