"""Order domain exceptions.

Raised by the service layer and the state machine when business rules are
violated.  The global exception handler renders them; views do not catch
them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from modules.core.exceptions import Conflict, DomainError, NotFound


class OrderNotFound(NotFound):
    """The requested order does not exist or has been soft-deleted."""

    code = "order_not_found"

    def __init__(self, order_id: Any) -> None:
        super().__init__(f"Order {order_id} not found.", order_id=str(order_id))
        self.order_id = order_id


class IllegalTransition(Conflict):
    """The status change is not an edge of the order state machine."""

    code = "illegal_transition"

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Cannot move order from {from_status} to {to_status}.",
            from_status=from_status,
            to_status=to_status,
        )
        self.from_status = from_status
        self.to_status = to_status


class OrderNotCancellable(Conflict):
    """The order has a captured payment: it must be refunded instead."""

    code = "order_not_cancellable"


class EmptyCart(DomainError):
    """Checkout was requested with an empty cart."""

    code = "empty_cart"


class BelowMinimumOrder(DomainError):
    """The cart subtotal is below the store's minimum order amount."""

    code = "below_minimum_order"

    def __init__(self, subtotal: Decimal, minimum: Decimal) -> None:
        super().__init__(
            f"Minimum order amount is {minimum}; cart subtotal is {subtotal}.",
            subtotal=str(subtotal),
            minimum=str(minimum),
        )
        self.subtotal = subtotal
        self.minimum = minimum


class IdempotencyKeyReused(Conflict):
    """The idempotency key already belongs to another customer's order."""

    code = "idempotency_key_reused"
