"""Domain events for the Payments bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class PaymentCompleted(DomainEvent):
    order_id: Any
    user_id: Any
    amount: Decimal
    method: str
    gateway_payment_id: str
    source: str
    requires_refund: bool = False


@dataclass(frozen=True, kw_only=True)
class PaymentFailedEvent(DomainEvent):
    order_id: Any
    user_id: Any
    method: str
    reason: str
    source: str


@dataclass(frozen=True, kw_only=True)
class PaymentRefunded(DomainEvent):
    order_id: Any
    user_id: Any
    refund_id: str
    amount: Decimal
