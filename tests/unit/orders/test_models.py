"""Unit tests for Order / OrderItem model helpers."""

from __future__ import annotations

import re
from decimal import Decimal
from unittest.mock import patch

import pytest

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.models import Order, OrderItem

pytestmark = pytest.mark.unit


class TestOrderNumber:
    def test_format(self):
        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{6}", Order.generate_order_number())

    def test_collision_is_retried(self, place_order):
        taken = place_order().order_number

        with patch.object(
            Order, "generate_order_number", side_effect=[taken, "ORD-20260101-FFFFFF"]
        ):
            assert Order.next_order_number() == "ORD-20260101-FFFFFF"

    def test_gives_up_after_max_retries(self, place_order):
        taken = place_order().order_number

        with patch.object(Order, "generate_order_number", return_value=taken):
            with pytest.raises(RuntimeError):
                Order.next_order_number()


class TestOrderHelpers:
    def test_uses_gateway(self):
        assert Order(payment_method=PaymentMethod.STRIPE).uses_gateway
        assert Order(payment_method=PaymentMethod.RAZORPAY).uses_gateway
        assert not Order(payment_method=PaymentMethod.CASH_ON_DELIVERY).uses_gateway

    @pytest.mark.parametrize(
        "status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED]
    )
    def test_terminal_states(self, status):
        assert Order(status=status).is_terminal


class TestOrderItem:
    def test_total_uses_charged_price(self, place_order):
        order = place_order()

        bread_line = order.items.get(product_name="Bread")
        assert bread_line.selling_price == Decimal("40.00")
        assert bread_line.total == Decimal("40.00")

    def test_total_recomputed_on_save(self, place_order):
        line = place_order().items.get(product_name="Toned Milk 1L")
        line.quantity = 3
        line.save()

        assert OrderItem.objects.get(id=line.id).total == Decimal("180.00")
