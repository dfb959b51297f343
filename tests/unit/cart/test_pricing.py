"""Unit tests for the store pricing policy."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from modules.cart.pricing import delivery_fee_for, money, price_line, price_lines

pytestmark = pytest.mark.unit


def _product(price: str, discounted: str | None = None):
    return SimpleNamespace(
        id="p",
        name="Item",
        sku="SKU",
        price=Decimal(price),
        discounted_price=Decimal(discounted) if discounted else None,
    )


def test_money_rounds_half_up():
    assert money(Decimal("1.005")) == Decimal("1.01")
    assert money(Decimal("2")) == Decimal("2.00")


def test_discount_wins_over_list_price():
    line = price_line(_product("45.00", "40.00"), 3)

    assert line.total == Decimal("120.00")
    assert line.savings == Decimal("15.00")


@pytest.mark.parametrize(
    "subtotal,fee",
    [("0.00", "0.00"), ("198.99", "25.00"), ("199.00", "0.00"), ("500.00", "0.00")],
)
def test_delivery_fee(subtotal, fee):
    assert delivery_fee_for(Decimal(subtotal)) == Decimal(fee)


def test_no_free_delivery_threshold(settings):
    settings.STORE_FREE_DELIVERY_ABOVE = Decimal("0")
    assert delivery_fee_for(Decimal("1000.00")) == Decimal("25.00")


def test_breakdown_with_tax(settings):
    settings.STORE_TAX_RATE = Decimal("0.18")

    breakdown = price_lines([price_line(_product("33.33"), 3)])

    assert breakdown.subtotal == Decimal("99.99")
    assert breakdown.tax == Decimal("18.00")
    assert breakdown.total == Decimal("142.99")
    assert breakdown.item_count == 3
