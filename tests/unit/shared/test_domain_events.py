"""Unit tests for domain events registration on entities."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.events import OrderPlaced
from modules.orders.models import Order

pytestmark = pytest.mark.unit


def _placed(order: Order) -> OrderPlaced:
    return OrderPlaced(
        aggregate_id=order.id,
        order_number=order.order_number,
        user_id=1,
        status=OrderStatus.PENDING,
        payment_method=PaymentMethod.STRIPE,
        total=Decimal("185.00"),
        item_count=3,
    )


def test_order_registers_and_pulls_domain_events():
    order = Order(id=uuid4(), order_number="QC-TEST-000001", status=OrderStatus.PENDING)

    assert order.domain_events == []

    event = _placed(order)
    order.add_domain_event(event)

    assert order.domain_events == [event]
    assert event.event_name == "OrderPlaced"

    assert order.pull_domain_events() == [event]
    assert order.domain_events == []


def test_payload_is_json_safe():
    order = Order(id=uuid4(), order_number="QC-TEST-000002", status=OrderStatus.PENDING)

    payload = _placed(order).to_payload()

    assert payload["aggregate_id"] == str(order.id)
    assert payload["total"] == "185.00"
    assert payload["event_name"] == "OrderPlaced"
    assert isinstance(payload["occurred_on"], str)
