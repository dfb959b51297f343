"""Periodic tasks of the orders module."""

import structlog
from celery import shared_task

from modules.orders.services import build_order_service

logger = structlog.get_logger(__name__)


@shared_task(name="orders.cancel_stale_pending_orders")
def cancel_stale_pending_orders():
    """Cancel gateway orders whose payment never arrived (Celery beat)."""
    cancelled = build_order_service().cancel_stale_pending_orders()
    logger.info("task.stale_pending_orders_swept", cancelled=cancelled)
    return {"cancelled": cancelled}
