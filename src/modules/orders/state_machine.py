"""Order state machine: the only writer of ``Order.status``.

Legal edges live in ``modules.orders.constants.VALID_TRANSITIONS``.  A
transition is applied under the order row lock together with its
``OrderStatusHistory`` row, and, for CANCELLED / REFUNDED, the
compensating stock release, all in one transaction.

Re-applying the current status is a successful no-op: payment callbacks
may deliver the same outcome more than once.

Lock order used across the codebase: order row, then payment row, then
product rows (ascending id).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import STOCK_RESTORING_STATES, OrderStatus
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import IllegalTransition, OrderNotFound
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.products.inventory import StockReservationController
from shared.infrastructure.notifications import (
    NotificationEmitter,
    notification_emitter,
)

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderStateMachine:
    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        inventory: Optional[StockReservationController] = None,
        emitter: Optional[NotificationEmitter] = None,
    ) -> None:
        self._order_repo = order_repository or OrderDjangoRepository()
        self._emitter = emitter or notification_emitter
        self._inventory = inventory or StockReservationController(emitter=self._emitter)

    @transaction.atomic
    def transition(
        self,
        order_id: Any,
        target: str,
        note: str = "",
        *,
        actor: Any = None,
    ) -> Order:
        """Move the order to ``target`` and record it.

        Raises:
            OrderNotFound: the order does not exist.
            IllegalTransition: ``(current, target)`` is not an allowed edge.
            StockLockTimeout: restoring stock timed out waiting for a lock.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(order_id)

        log = logger.bind(
            order_id=str(order.id),
            order_number=order.order_number,
            current_status=order.status,
            target_status=target,
        )

        if order.status == target:
            log.info("order.transition_noop")
            return order

        if not order.can_transition_to(target):
            log.warning("order.illegal_transition")
            raise IllegalTransition(order.status, target)

        old_status = order.status
        changes: dict[str, Any] = {"status": target}
        if target == OrderStatus.CANCELLED:
            changes["cancelled_at"] = timezone.now()
            changes["cancellation_reason"] = note
        elif target == OrderStatus.DELIVERED:
            changes["delivered_at"] = timezone.now()
        self._order_repo.update_fields(order, **changes)
        self._order_repo.add_history(order, old_status, target, note, user=actor)

        if target in STOCK_RESTORING_STATES:
            self._inventory.release(
                self._order_repo.list_items(order),
                reference=order.order_number,
                actor=actor,
                notes=f"Order {order.order_number} {target.lower()}",
            )

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                old_status=old_status,
                new_status=target,
                notes=note,
            )
        )
        self._emitter.emit_all(order.pull_domain_events())

        log.info("order.transitioned", old_status=old_status)
        return order

    def record_creation(
        self, order: Order, note: str = "", *, actor: Any = None
    ) -> None:
        """Append the initial ``None -> PENDING`` history row."""
        self._order_repo.add_history(
            order, None, order.status, note or "Order placed", user=actor
        )
