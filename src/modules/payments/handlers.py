"""Event handlers for Payments domain events."""

from __future__ import annotations

import structlog

from modules.payments.events import (
    PaymentCompleted,
    PaymentFailedEvent,
    PaymentRefunded,
)
from shared.domain.bus import IEventHandler
from shared.infrastructure.realtime import (
    ADMIN_ORDERS_CHANNEL,
    realtime_publisher,
    user_orders_channel,
)

logger = structlog.get_logger(__name__)


class PaymentCompletedHandler(IEventHandler[PaymentCompleted]):
    def handle(self, event: PaymentCompleted) -> None:
        log = logger.bind(
            payment_id=str(event.aggregate_id), order_id=str(event.order_id)
        )
        if event.requires_refund:
            log.error("payment.captured_for_cancelled_order", amount=str(event.amount))
        else:
            log.info("payment.completed", amount=str(event.amount), source=event.source)
        message = {"type": "payment_completed", **event.to_payload()}
        realtime_publisher.publish(user_orders_channel(event.user_id), message)
        realtime_publisher.publish(ADMIN_ORDERS_CHANNEL, message)


class PaymentFailedHandler(IEventHandler[PaymentFailedEvent]):
    def handle(self, event: PaymentFailedEvent) -> None:
        logger.info(
            "payment.failed",
            payment_id=str(event.aggregate_id),
            order_id=str(event.order_id),
            reason=event.reason,
        )
        realtime_publisher.publish(
            user_orders_channel(event.user_id),
            {"type": "payment_failed", **event.to_payload()},
        )


class PaymentRefundedHandler(IEventHandler[PaymentRefunded]):
    def handle(self, event: PaymentRefunded) -> None:
        logger.info(
            "payment.refunded",
            payment_id=str(event.aggregate_id),
            order_id=str(event.order_id),
            amount=str(event.amount),
        )
        message = {"type": "payment_refunded", **event.to_payload()}
        realtime_publisher.publish(user_orders_channel(event.user_id), message)
        realtime_publisher.publish(ADMIN_ORDERS_CHANNEL, message)


payment_completed_handler = PaymentCompletedHandler()
payment_failed_handler = PaymentFailedHandler()
payment_refunded_handler = PaymentRefundedHandler()
