"""Redis pub/sub channel used to fan out live updates to connected clients.

The websocket tier (outside this service) subscribes to these channels:

- ``stock:<product_id>``: stock level changes for one product.
- ``orders:user:<user_id>``: status changes of a customer's orders.
- ``orders:admin``: new orders and payment outcomes for the store dashboard.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import structlog
from django.conf import settings
from django_redis import get_redis_connection

logger = structlog.get_logger(__name__)

ADMIN_ORDERS_CHANNEL = "orders:admin"


def stock_channel(product_id: Any) -> str:
    return f"stock:{product_id}"


def user_orders_channel(user_id: Any) -> str:
    return f"orders:user:{user_id}"


class RealtimePublisher:
    def __init__(self, alias: str | None = None) -> None:
        self._alias = alias or settings.NOTIFICATIONS_REDIS_ALIAS

    @property
    def enabled(self) -> bool:
        return settings.NOTIFICATIONS_REALTIME_ENABLED

    def publish(self, channel: str, message: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        connection = get_redis_connection(self._alias)
        receivers = connection.publish(channel, json.dumps(message))
        logger.debug("realtime.published", channel=channel, receivers=receivers)


realtime_publisher = RealtimePublisher()
