"""Domain events for the Products bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class StockChanged(DomainEvent):
    """Raised once per product whose stock changed in a committed transaction."""

    product_name: str
    previous_stock: int
    new_stock: int
    is_available: bool
    action: str
    reference: str = ""


@dataclass(frozen=True, kw_only=True)
class LowStockReached(DomainEvent):
    """Raised when a stock change leaves a product at or below its threshold."""

    product_name: str
    stock_quantity: int
    low_stock_threshold: int
