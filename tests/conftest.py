from __future__ import annotations

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.addresses.models import Address
from modules.cart.models import Cart, CartItem
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.services import build_order_service
from modules.payments.gateways import reset_gateways, set_gateway
from modules.payments.gateways.fake import FakeGateway
from modules.products.models import Product
from shared.infrastructure.notifications import notification_emitter

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer():
    return User.objects.create_user(username="shopper", password="testpass123")


@pytest.fixture()
def other_customer():
    return User.objects.create_user(username="neighbour", password="testpass123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="dispatcher", password="testpass123", is_staff=True
    )


@pytest.fixture()
def auth_client(customer):
    """APIClient force-authenticated as ``customer``."""
    client = APIClient()
    client.force_authenticate(user=customer)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalogue, addresses and carts
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    counter = {"n": 0}

    def _make(
        price: str = "50.00",
        stock: int = 10,
        discounted: str | None = None,
        available: bool = True,
        threshold: int = 2,
        name: str | None = None,
    ) -> Product:
        counter["n"] += 1
        return Product.objects.create(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price=Decimal(price),
            discounted_price=Decimal(discounted) if discounted else None,
            stock_quantity=stock,
            low_stock_threshold=threshold,
            is_available=available,
        )

    return _make


@pytest.fixture()
def milk(make_product):
    return make_product(price="60.00", stock=10, name="Toned Milk 1L")


@pytest.fixture()
def bread(make_product):
    return make_product(price="45.00", stock=5, discounted="40.00", name="Bread")


@pytest.fixture()
def address(customer):
    return Address.objects.create(
        user=customer,
        full_name="Asha Verma",
        phone="+919800000001",
        address_line1="12 Residency Road",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560025",
    )


@pytest.fixture()
def fill_cart():
    def _fill(user, *lines):
        cart, _ = Cart.objects.get_or_create(user=user)
        for product, quantity in lines:
            CartItem.objects.create(cart=cart, product=product, quantity=quantity)
        return cart

    return _fill


# ---------------------------------------------------------------------------
# Payments and notifications
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_gateway():
    """A scriptable fake served for the STRIPE method."""
    gateway = FakeGateway(provider="stripe")
    set_gateway(PaymentMethod.STRIPE, gateway)
    yield gateway
    reset_gateways()


class RecordingBus:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.event_name for event in self.events]


@pytest.fixture()
def published(monkeypatch):
    """Capture events delivered by the notification emitter."""
    bus = RecordingBus()
    monkeypatch.setattr(notification_emitter, "_bus", bus)
    return bus


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@pytest.fixture()
def place_order(customer, address, fill_cart, milk, bread):
    """Check out ``customer``'s cart (2 x milk, 1 x bread by default).

    At the test store policy the default cart costs 120.00 + 40.00, plus a
    25.00 delivery fee: 185.00.
    """

    def _place(
        payment_method: str = PaymentMethod.STRIPE,
        lines=None,
        idempotency_key: str | None = None,
    ):
        fill_cart(customer, *(lines or [(milk, 2), (bread, 1)]))
        dto = PlaceOrderDTO(
            user_id=customer.pk,
            address_id=address.id,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
        )
        order, _ = build_order_service().place_order(dto, actor=customer)
        return order

    return _place
