"""Event handlers for Products domain events."""

from __future__ import annotations

import structlog

from modules.products.events import LowStockReached, StockChanged
from shared.domain.bus import IEventHandler
from shared.infrastructure.realtime import (
    ADMIN_ORDERS_CHANNEL,
    realtime_publisher,
    stock_channel,
)

logger = structlog.get_logger(__name__)


class StockChangedHandler(IEventHandler[StockChanged]):
    def handle(self, event: StockChanged) -> None:
        logger.info(
            "stock.changed",
            product_id=str(event.aggregate_id),
            previous_stock=event.previous_stock,
            new_stock=event.new_stock,
            action=event.action,
            reference=event.reference,
        )
        realtime_publisher.publish(
            stock_channel(event.aggregate_id),
            {
                "type": "stock_update",
                "product_id": str(event.aggregate_id),
                "product_name": event.product_name,
                "previous_stock": event.previous_stock,
                "new_stock": event.new_stock,
                "is_available": event.is_available,
            },
        )


class LowStockReachedHandler(IEventHandler[LowStockReached]):
    def handle(self, event: LowStockReached) -> None:
        logger.warning(
            "stock.low",
            product_id=str(event.aggregate_id),
            stock_quantity=event.stock_quantity,
            threshold=event.low_stock_threshold,
        )
        realtime_publisher.publish(
            ADMIN_ORDERS_CHANNEL,
            {"type": "low_stock", **event.to_payload()},
        )


stock_changed_handler = StockChangedHandler()
low_stock_reached_handler = LowStockReachedHandler()
