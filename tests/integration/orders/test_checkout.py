"""Checkout through ``OrderService.place_order``.

Covers:
- COD orders confirm immediately; gateway orders wait in PENDING.
- Prices, delivery fee and address are snapshotted on the order.
- Stock is reserved with one InventoryLog row per product.
- Every rejection leaves stock, orders, payments and the cart untouched.
- Idempotency-Key replay returns the first order.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.addresses.exceptions import AddressNotFound
from modules.addresses.models import Address
from modules.cart.models import CartItem
from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.exceptions import BelowMinimumOrder, EmptyCart, IdempotencyKeyReused
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.services import build_order_service
from modules.payments.constants import PaymentStatus
from modules.payments.exceptions import GatewayUnavailable
from modules.payments.gateways import reset_gateways, set_gateway
from modules.payments.gateways.fake import FakeGateway
from modules.payments.models import Payment
from modules.products.constants import InventoryAction
from modules.products.exceptions import OutOfStock, ProductUnavailable
from modules.products.models import InventoryLog

pytestmark = pytest.mark.integration


@pytest.fixture()
def service():
    return build_order_service()


def _dto(user, address, method=PaymentMethod.CASH_ON_DELIVERY, key=None):
    return PlaceOrderDTO(
        user_id=user.pk,
        address_id=address.id,
        payment_method=method,
        idempotency_key=key,
    )


def _assert_nothing_written(customer, *products_and_stock):
    assert Order.objects.count() == 0
    assert Payment.objects.count() == 0
    assert InventoryLog.objects.count() == 0
    for product, stock in products_and_stock:
        product.refresh_from_db()
        assert product.stock_quantity == stock
    assert CartItem.objects.filter(cart__user=customer).exists()


class TestSuccessfulCheckout:
    def test_cod_order_is_confirmed(self, service, customer, address, fill_cart, milk):
        fill_cart(customer, (milk, 2))

        order, created = service.place_order(_dto(customer, address), actor=customer)

        assert created is True
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment.status == PaymentStatus.PENDING
        assert order.payment.method == PaymentMethod.CASH_ON_DELIVERY
        history = list(order.status_history.values_list("new_status", "notes"))
        assert history == [
            (OrderStatus.PENDING, "Order placed"),
            (OrderStatus.CONFIRMED, "Cash on delivery order confirmed"),
        ]

    def test_gateway_order_waits_for_payment(self, place_order):
        order = place_order(PaymentMethod.STRIPE)

        assert order.status == OrderStatus.PENDING
        assert order.payment.status == PaymentStatus.PENDING
        assert order.payment.amount == order.total

    def test_pricing_snapshot(self, place_order):
        order = place_order()

        assert order.subtotal == Decimal("160.00")
        assert order.delivery_fee == Decimal("25.00")
        assert order.tax == Decimal("0.00")
        assert order.total == Decimal("185.00")

        lines = {item.product_name: item for item in order.items.all()}
        assert lines["Toned Milk 1L"].total == Decimal("120.00")
        assert lines["Bread"].unit_price == Decimal("45.00")
        assert lines["Bread"].discounted_price == Decimal("40.00")
        assert lines["Bread"].total == Decimal("40.00")

    def test_free_delivery_above_threshold(self, place_order, milk):
        order = place_order(lines=[(milk, 4)])

        assert order.subtotal == Decimal("240.00")
        assert order.delivery_fee == Decimal("0.00")
        assert order.total == Decimal("240.00")

    def test_tax_rate_applied(self, place_order, settings):
        settings.STORE_TAX_RATE = Decimal("0.05")

        order = place_order()

        assert order.tax == Decimal("8.00")
        assert order.total == Decimal("193.00")

    def test_address_snapshot_survives_edits(self, place_order, address):
        order = place_order()
        address.city = "Mysuru"
        address.save()

        order.refresh_from_db()
        assert order.delivery_address["city"] == "Bengaluru"
        assert order.delivery_address["id"] == str(address.id)

    def test_stock_reserved_and_logged(self, place_order, milk, bread):
        order = place_order()

        milk.refresh_from_db()
        bread.refresh_from_db()
        assert milk.stock_quantity == 8
        assert bread.stock_quantity == 4
        logs = InventoryLog.objects.filter(reference=order.order_number)
        assert set(logs.values_list("action", flat=True)) == {InventoryAction.STOCK_OUT}
        assert sorted(logs.values_list("quantity", flat=True)) == [-2, -1]

    def test_cart_is_cleared(self, place_order, customer):
        place_order()
        assert not CartItem.objects.filter(cart__user=customer).exists()

    def test_order_placed_emitted_after_commit(
        self, place_order, published, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            order = place_order(PaymentMethod.CASH_ON_DELIVERY)

        assert "OrderPlaced" in published.names()
        assert "StockChanged" in published.names()
        placed = next(e for e in published.events if e.event_name == "OrderPlaced")
        assert placed.order_number == order.order_number
        assert placed.item_count == 3


class TestRejectedCheckout:
    def test_empty_cart(self, service, customer, address):
        with pytest.raises(EmptyCart):
            service.place_order(_dto(customer, address))
        assert Order.objects.count() == 0

    def test_foreign_address(self, service, other_customer, address, fill_cart, milk):
        fill_cart(other_customer, (milk, 1))

        with pytest.raises(AddressNotFound):
            service.place_order(_dto(other_customer, address))

        milk.refresh_from_db()
        assert milk.stock_quantity == 10

    def test_out_of_stock_rolls_back_every_line(
        self, service, customer, address, fill_cart, milk, bread
    ):
        fill_cart(customer, (milk, 2), (bread, 6))

        with pytest.raises(OutOfStock) as exc_info:
            service.place_order(_dto(customer, address))

        assert exc_info.value.available == 5
        _assert_nothing_written(customer, (milk, 10), (bread, 5))

    def test_second_basket_finds_stock_taken(
        self, service, customer, other_customer, address, fill_cart, make_product
    ):
        scarce = make_product(stock=3)
        fill_cart(customer, (scarce, 2))
        fill_cart(other_customer, (scarce, 2))
        other_address = Address.objects.create(
            user=other_customer,
            full_name="Ravi Rao",
            phone="+919800000002",
            address_line1="4 MG Road",
            city="Bengaluru",
            state="Karnataka",
            postal_code="560001",
        )
        service.place_order(_dto(customer, address))

        with pytest.raises(OutOfStock) as exc_info:
            service.place_order(_dto(other_customer, other_address))

        assert exc_info.value.available == 1
        scarce.refresh_from_db()
        assert scarce.stock_quantity == 1
        assert Order.objects.count() == 1
        assert CartItem.objects.filter(cart__user=other_customer).exists()

    def test_unavailable_product(
        self, service, customer, address, fill_cart, milk, make_product
    ):
        delisted = make_product(available=False)
        fill_cart(customer, (milk, 1), (delisted, 1))

        with pytest.raises(ProductUnavailable):
            service.place_order(_dto(customer, address))

        _assert_nothing_written(customer, (milk, 10))

    def test_below_minimum_order(
        self, service, customer, address, fill_cart, milk, settings
    ):
        settings.STORE_MIN_ORDER_AMOUNT = Decimal("99.00")
        fill_cart(customer, (milk, 1))

        with pytest.raises(BelowMinimumOrder):
            service.place_order(_dto(customer, address))

        _assert_nothing_written(customer, (milk, 10))

    def test_gateway_unavailable(self, service, customer, address, fill_cart, milk):
        set_gateway(PaymentMethod.STRIPE, FakeGateway(secret=""))
        fill_cart(customer, (milk, 1))
        try:
            with pytest.raises(GatewayUnavailable):
                service.place_order(_dto(customer, address, PaymentMethod.STRIPE))
        finally:
            reset_gateways()

        _assert_nothing_written(customer, (milk, 10))

    def test_cod_needs_no_gateway(self, customer, address, fill_cart, milk, settings):
        settings.PAYMENT_GATEWAYS = {}
        fill_cart(customer, (milk, 1))

        order, _ = build_order_service().place_order(_dto(customer, address))

        assert order.status == OrderStatus.CONFIRMED


class TestIdempotentCheckout:
    def test_replay_returns_first_order(
        self, service, customer, address, fill_cart, milk
    ):
        fill_cart(customer, (milk, 2))
        first, created = service.place_order(_dto(customer, address, key="chk-1"))
        fill_cart(customer, (milk, 1))

        again, created_again = service.place_order(_dto(customer, address, key="chk-1"))

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert Order.objects.count() == 1
        milk.refresh_from_db()
        assert milk.stock_quantity == 8
        assert OrderStatusHistory.objects.filter(order=first).count() == 2

    def test_key_of_another_customer(
        self, service, customer, other_customer, address, fill_cart, milk
    ):
        fill_cart(customer, (milk, 1))
        service.place_order(_dto(customer, address, key="shared-key"))

        with pytest.raises(IdempotencyKeyReused):
            service.place_order(_dto(other_customer, address, key="shared-key"))

    def test_blank_key_means_no_key(self, customer, address):
        assert _dto(customer, address, key="").idempotency_key is None
