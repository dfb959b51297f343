"""Payment domain exceptions."""

from __future__ import annotations

from typing import Any

from modules.core.exceptions import (
    AuthenticityFailed,
    Conflict,
    DomainError,
    GatewayUnavailable,
    NotFound,
)

__all__ = [
    "AuthenticityFailed",
    "GatewayError",
    "GatewayUnavailable",
    "IllegalPaymentTransition",
    "InvalidRefundAmount",
    "OrderNotPayable",
    "PaymentAlreadyCompleted",
    "PaymentFailed",
    "PaymentNotFound",
    "PaymentNotRequired",
    "PaymentNotSettled",
    "RefundNotAllowed",
    "UnknownPaymentProvider",
]


class PaymentNotFound(NotFound):
    """No payment matches the order or gateway reference."""

    code = "payment_not_found"


class PaymentFailed(DomainError):
    """The gateway reported the payment as failed."""

    code = "payment_failed"

    def __init__(self, reason: str = "", **context: Any) -> None:
        super().__init__(reason or "Payment failed.", **context)
        self.reason = reason


class PaymentAlreadyCompleted(Conflict):
    """The payment has already been captured."""

    code = "payment_already_completed"


class IllegalPaymentTransition(Conflict):
    """The payment status change is not an allowed edge."""

    code = "illegal_payment_transition"

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Cannot move payment from {from_status} to {to_status}.",
            from_status=from_status,
            to_status=to_status,
        )
        self.from_status = from_status
        self.to_status = to_status


class RefundNotAllowed(Conflict):
    """The payment or order is not in a refundable state."""

    code = "refund_not_allowed"


class UnknownPaymentProvider(NotFound):
    """No gateway is registered under the given provider name."""

    code = "unknown_payment_provider"


class GatewayError(GatewayUnavailable):
    """The provider answered with an error or could not be reached."""

    code = "gateway_error"


class PaymentNotRequired(DomainError):
    """The order is paid on delivery; there is nothing to pay online."""

    code = "payment_not_required"


class OrderNotPayable(Conflict):
    """The order is no longer awaiting payment."""

    code = "order_not_payable"


class InvalidRefundAmount(DomainError):
    """The refund amount is not positive or exceeds the captured amount."""

    code = "invalid_refund_amount"


class PaymentNotSettled(Conflict):
    """The provider has not reached a final outcome yet (e.g. 3-D Secure)."""

    code = "payment_not_settled"
