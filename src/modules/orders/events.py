"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderPlaced(DomainEvent):
    """Raised when checkout commits a new order."""

    order_number: str
    user_id: Any
    status: str
    payment_method: str
    total: Decimal
    item_count: int


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised for every committed status transition."""

    order_number: str
    user_id: Any
    old_status: Optional[str]
    new_status: str
    notes: str = ""
