"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``PlaceOrderDTO``: checkout input (the cart itself is read server-side).
- ``UpdateOrderStatusDTO``: staff status change.
- ``OrderItemOutputDTO`` / ``StatusHistoryDTO`` / ``OrderOutputDTO``: outputs.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import OrderStatus, PaymentMethod

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class PlaceOrderDTO(BaseModel):
    """Immutable DTO for checkout requests.

    ``idempotency_key`` comes from the ``Idempotency-Key`` header; a replay
    with the same key returns the order created by the first request.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: int
    address_id: UUID
    payment_method: PaymentMethod
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("idempotency_key")
    @classmethod
    def blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class UpdateOrderStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    notes: str = ""

    @field_validator("status")
    @classmethod
    def not_a_compensating_status(cls, v: OrderStatus) -> OrderStatus:
        if v == OrderStatus.CANCELLED:
            raise ValueError("Use the /cancel/ endpoint for cancellations.")
        if v == OrderStatus.REFUNDED:
            raise ValueError("Use /payments/refund/ to refund an order.")
        return v


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemOutputDTO(BaseModel):
    """Immutable DTO for order item API responses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    product_id: UUID
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Decimal
    discounted_price: Optional[Decimal]
    total: Decimal


class StatusHistoryDTO(BaseModel):
    """Immutable DTO for order status history API responses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    old_status: Optional[str]
    new_status: str
    notes: str
    created_at: datetime

    @classmethod
    def from_entity(cls, history: OrderStatusHistory) -> StatusHistoryDTO:
        return cls(
            id=history.id,
            old_status=history.old_status,
            new_status=history.new_status,
            notes=history.notes,
            created_at=history.created_at,
        )


class OrderOutputDTO(BaseModel):
    """Immutable DTO for order API responses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    order_number: str
    user_id: int
    status: str
    payment_method: str
    payment_status: Optional[str]
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal
    delivery_address: Dict[str, Any]
    notes: str
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOutputDTO]
    history: List[StatusHistoryDTO]

    @classmethod
    def from_entity(cls, order: Order) -> OrderOutputDTO:
        """Build an output DTO from an Order model instance.

        Assumes ``items``, ``status_history`` and ``payment`` are loaded.
        """
        items = [
            OrderItemOutputDTO(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                product_sku=item.product_sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discounted_price=item.discounted_price,
                total=item.total,
            )
            for item in order.items.all()
        ]
        history = [StatusHistoryDTO.from_entity(h) for h in order.status_history.all()]
        payment = getattr(order, "payment", None)
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            payment_method=order.payment_method,
            payment_status=payment.status if payment else None,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            tax=order.tax,
            total=order.total,
            delivery_address=order.delivery_address,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=items,
            history=history,
        )
