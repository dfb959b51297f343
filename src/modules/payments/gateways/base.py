"""Payment gateway port.

Every provider adapter implements ``PaymentGateway``.  The reconciler only
ever sees the value objects defined here, never a provider payload.
"""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from modules.payments.constants import GatewayOutcome

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.models import Payment


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatewayIntent:
    """What the client needs to complete a payment out-of-band."""

    gateway_order_id: str
    amount: Decimal
    currency: str
    client_secret: str = ""
    publishable_key: str = ""


@dataclass(frozen=True)
class GatewayStatus:
    gateway_payment_id: str
    outcome: str
    raw_status: str = ""
    gateway_order_id: str = ""
    order_id: str = ""
    failure_reason: str = ""


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: Decimal
    status: str = ""


@dataclass(frozen=True)
class PaymentEvidence:
    """Provider-neutral claim that a payment reached some outcome.

    Built from a client callback or a parsed webhook.  ``outcome`` is one
    of ``GatewayOutcome``; ``PENDING`` evidence carries no state change.
    """

    gateway_payment_id: str = ""
    gateway_order_id: str = ""
    order_id: str = ""
    signature: str = ""
    outcome: str = GatewayOutcome.SUCCEEDED
    failure_reason: str = ""
    event_type: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def with_outcome(self, outcome: str, **changes: Any) -> PaymentEvidence:
        return replace(self, outcome=outcome, **changes)

    @property
    def is_terminal(self) -> bool:
        return self.outcome in (GatewayOutcome.SUCCEEDED, GatewayOutcome.FAILED)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_minor_units(amount: Decimal) -> int:
    """Rupees/dollars to paise/cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def hmac_sha256_hex(secret: str, payload: Union[bytes, str]) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: str) -> bool:
    """Constant-time comparison; empty values never match."""
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------


class PaymentGateway(ABC):
    """Abstract interface for payment processing.

    Adapters are cheap to build and hold no connection state; build one
    per use through ``modules.payments.gateways.GatewayRegistry``.
    """

    provider: str = ""
    signature_header: str = ""

    def __init__(self, **options: Any) -> None:
        self.options = options

    def is_configured(self) -> bool:
        """``True`` when the credentials needed to charge are present."""
        return True

    @abstractmethod
    def create_intent(self, order: Order, payment: Payment) -> GatewayIntent:
        """Create the provider-side payment object for *order*.

        Raises:
            GatewayError: the provider rejected the call or is unreachable.
        """
        ...

    @abstractmethod
    def verify_signature(
        self, payload: Union[bytes, str], signature: str, secret: str
    ) -> bool: ...

    @abstractmethod
    def fetch_status(self, gateway_payment_id: str) -> GatewayStatus: ...

    @abstractmethod
    def refund(
        self,
        gateway_payment_id: str,
        amount: Decimal,
        reason: str = "",
        idempotency_key: Optional[str] = None,
    ) -> RefundResult: ...

    @abstractmethod
    def verify_client_callback(self, evidence: PaymentEvidence) -> PaymentEvidence:
        """Authenticate client-submitted evidence.

        Returns the evidence with the authoritative outcome filled in.

        Raises:
            AuthenticityFailed: the evidence does not verify.
        """
        ...

    @abstractmethod
    def parse_webhook(
        self, body: bytes, headers: Mapping[str, str]
    ) -> PaymentEvidence:
        """Verify the webhook signature and translate the event.

        Raises:
            AuthenticityFailed: signature missing or invalid, or body unreadable.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} provider={self.provider!r}>"
