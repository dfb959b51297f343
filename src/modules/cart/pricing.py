"""Store pricing policy shared by the cart summary and checkout.

- Each line is charged at the product's selling price (discounted price
  when set, list price otherwise).
- Delivery is free once the subtotal reaches ``STORE_FREE_DELIVERY_ABOVE``;
  an empty cart pays nothing.
- Tax is ``STORE_TAX_RATE`` applied to the subtotal.

All amounts are ``Decimal`` rounded half-up to two places.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional, Tuple

from django.conf import settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricedLine:
    product_id: Any
    product_name: str
    product_sku: str
    unit_price: Decimal
    discounted_price: Optional[Decimal]
    quantity: int

    @property
    def selling_price(self) -> Decimal:
        return self.discounted_price if self.discounted_price else self.unit_price

    @property
    def total(self) -> Decimal:
        return money(self.selling_price * self.quantity)

    @property
    def savings(self) -> Decimal:
        return money((self.unit_price - self.selling_price) * self.quantity)


@dataclass(frozen=True)
class PriceBreakdown:
    lines: Tuple[PricedLine, ...]
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def savings(self) -> Decimal:
        return money(sum((line.savings for line in self.lines), ZERO))


def price_line(product: Any, quantity: int) -> PricedLine:
    return PricedLine(
        product_id=product.id,
        product_name=product.name,
        product_sku=product.sku,
        unit_price=product.price,
        discounted_price=product.discounted_price,
        quantity=quantity,
    )


def price_lines(lines: Iterable[PricedLine]) -> PriceBreakdown:
    lines = tuple(lines)
    subtotal = money(sum((line.total for line in lines), ZERO))
    delivery_fee = delivery_fee_for(subtotal)
    tax = money(subtotal * settings.STORE_TAX_RATE)
    return PriceBreakdown(
        lines=lines,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        tax=tax,
        total=money(subtotal + delivery_fee + tax),
    )


def delivery_fee_for(subtotal: Decimal) -> Decimal:
    if subtotal <= ZERO:
        return ZERO
    threshold = settings.STORE_FREE_DELIVERY_ABOVE
    if threshold and subtotal >= threshold:
        return ZERO
    return money(settings.STORE_DELIVERY_FEE)
