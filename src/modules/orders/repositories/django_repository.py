"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Read methods
return ``None`` for missing or malformed ids.  Write methods never open
their own transaction: the order, its items, the payment row and the
stock reservation must commit or roll back together, so the caller owns
the ``transaction.atomic`` block.

Concurrency control on status updates uses ``select_for_update()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError

from modules.orders.constants import GATEWAY_METHODS, OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, fields: Dict[str, Any], items: Iterable[Dict[str, Any]]) -> Order:
        """Insert the order and one ``OrderItem`` per item dict.

        Item dicts carry ``product``, ``product_name``, ``product_sku``,
        ``quantity``, ``unit_price`` and ``discounted_price``.
        """
        order = Order(**fields)
        order.save()
        for item_fields in items:
            OrderItem(order=order, **item_fields).save()
        logger.debug("order.inserted", order_id=str(order.id))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve a live order with eager-loaded relations.

        ``select_related`` for user and payment (single JOIN),
        ``prefetch_related`` for items and status history.
        """
        try:
            return (
                self._with_relations(Order.objects.alive())
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None):
        """Live orders with optional Django ORM look-ups, newest first.

        Examples of valid filters::

            {"user_id": user.id}
            {"status": OrderStatus.PENDING}
        """
        queryset = self._with_relations(Order.objects.alive())
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_for_update(self, id: Any) -> Optional[Order]:
        """Lock the order row; must run inside ``transaction.atomic``."""
        try:
            return (
                Order.objects.alive()
                .select_for_update()
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._with_relations(Order.objects.alive()).filter(
            idempotency_key=key
        ).first()

    def list_items(self, order: Order) -> List[OrderItem]:
        return list(
            OrderItem.objects.alive().filter(order=order).order_by("created_at", "id")
        )

    def stale_pending_ids(self, created_before: datetime) -> List[Any]:
        return list(
            Order.objects.alive()
            .filter(
                status=OrderStatus.PENDING,
                payment_method__in=GATEWAY_METHODS,
                created_at__lt=created_before,
            )
            .order_by("created_at")
            .values_list("id", flat=True)
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def update_fields(self, order: Order, **fields: Any) -> Order:
        for name, value in fields.items():
            setattr(order, name, value)
        order.save(update_fields=list(fields))
        return order

    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        notes: str = "",
        user: Any = None,
    ) -> OrderStatusHistory:
        return OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            user=user if getattr(user, "pk", None) else None,
        )

    # ------------------------------------------------------------------
    # Save / Delete (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        entity.save()
        return entity

    def delete(self, id: Any) -> bool:
        """Soft-delete an order.  Returns ``False`` if not found."""
        order = self.get_by_id(id)
        if not order:
            return False
        order.delete()
        logger.info("order.soft_deleted", order_id=str(id))
        return True

    @staticmethod
    def _with_relations(queryset):
        return queryset.select_related("user", "payment").prefetch_related(
            "items", "status_history"
        )
