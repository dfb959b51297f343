"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderPlaced, OrderStatusChanged
from shared.domain.bus import IEventHandler
from shared.infrastructure.realtime import (
    ADMIN_ORDERS_CHANNEL,
    realtime_publisher,
    user_orders_channel,
)

logger = structlog.get_logger(__name__)


class OrderPlacedHandler(IEventHandler[OrderPlaced]):
    def handle(self, event: OrderPlaced) -> None:
        logger.info(
            "order.placed_broadcast",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            total=str(event.total),
        )
        realtime_publisher.publish(
            ADMIN_ORDERS_CHANNEL, {"type": "new_order", **event.to_payload()}
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.status_broadcast",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )
        message = {"type": "order_status", **event.to_payload()}
        realtime_publisher.publish(user_orders_channel(event.user_id), message)
        realtime_publisher.publish(ADMIN_ORDERS_CHANNEL, message)


order_placed_handler = OrderPlacedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
