"""Product DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``StockAdjustmentDTO``: input for an administrative stock change.
- ``StockMovementDTO``: output describing the applied change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator

from modules.products.constants import InventoryAction

if TYPE_CHECKING:
    from modules.products.inventory import StockMovement


class StockAdjustmentDTO(BaseModel):
    """Immutable DTO for ``PATCH /products/{id}/stock/``.

    ``STOCK_IN`` / ``STOCK_OUT`` carry a positive unit count;
    ``ADJUSTMENT`` carries the new absolute stock level (>= 0).
    """

    model_config = ConfigDict(frozen=True)

    action: InventoryAction
    quantity: int
    notes: str = ""
    reference: str = ""

    @model_validator(mode="after")
    def quantity_matches_action(self):
        if self.action == InventoryAction.ADJUSTMENT:
            if self.quantity < 0:
                raise ValueError("Adjusted stock level cannot be negative.")
        elif self.quantity < 1:
            raise ValueError("Quantity must be at least 1.")
        return self


class StockMovementDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    action: str
    quantity: int
    previous_stock: int
    new_stock: int

    @classmethod
    def from_movement(cls, movement: StockMovement) -> StockMovementDTO:
        return cls(
            product_id=movement.product.id,
            action=movement.action,
            quantity=movement.quantity,
            previous_stock=movement.previous_stock,
            new_stock=movement.new_stock,
        )
