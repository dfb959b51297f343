"""Unit tests for StockReservationController.

Covers:
- reserve: all-or-nothing decrement, merged lines, rejection reasons.
- release: compensating STOCK_IN, soft-deleted products still restored.
- adjust: STOCK_IN / STOCK_OUT deltas, ADJUSTMENT as absolute level,
  never clamps below zero.
- Lock timeouts surface as a retryable error.
- StockChanged / LowStockReached delivered after commit.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from django.db import OperationalError, transaction

from modules.products.constants import InventoryAction
from modules.products.exceptions import (
    OutOfStock,
    ProductNotFound,
    ProductUnavailable,
    StockLockTimeout,
)
from modules.products.inventory import ReservationLine, StockReservationController
from modules.products.models import InventoryLog, Product

pytestmark = pytest.mark.unit


@pytest.fixture()
def controller():
    return StockReservationController()


def _line(product, quantity):
    return ReservationLine(product_id=product.id, quantity=quantity)


# ---------------------------------------------------------------------------
# reserve
# ---------------------------------------------------------------------------


class TestReserve:
    def test_decrements_and_logs(self, controller, milk, bread, staff_user):
        with transaction.atomic():
            result = controller.reserve(
                [_line(milk, 3), _line(bread, 2)], reference="QC-1", actor=staff_user
            )

        milk.refresh_from_db()
        bread.refresh_from_db()
        assert (milk.stock_quantity, bread.stock_quantity) == (7, 3)
        assert result.total_quantity == 5
        assert set(result.products) == {milk.id, bread.id}

        log = InventoryLog.objects.get(product=milk)
        assert log.action == InventoryAction.STOCK_OUT
        assert (log.quantity, log.previous_stock, log.new_stock) == (-3, 10, 7)
        assert log.reference == "QC-1"
        assert log.performed_by == staff_user

    def test_repeated_product_lines_are_merged(self, controller, milk):
        with transaction.atomic():
            controller.reserve([_line(milk, 4), _line(milk, 6)], reference="QC-2")

        milk.refresh_from_db()
        assert milk.stock_quantity == 0
        assert InventoryLog.objects.filter(product=milk).count() == 1

    def test_exact_stock_is_allowed(self, controller, bread):
        with transaction.atomic():
            controller.reserve([_line(bread, 5)], reference="QC-3")

        bread.refresh_from_db()
        assert bread.stock_quantity == 0

    def test_out_of_stock_touches_nothing(self, controller, milk, bread):
        with pytest.raises(OutOfStock) as exc_info:
            with transaction.atomic():
                controller.reserve([_line(milk, 1), _line(bread, 6)], reference="QC-4")

        assert (exc_info.value.available, exc_info.value.requested) == (5, 6)
        milk.refresh_from_db()
        assert milk.stock_quantity == 10
        assert InventoryLog.objects.count() == 0

    def test_unavailable_product(self, controller, make_product):
        product = make_product(available=False)

        with pytest.raises(ProductUnavailable):
            with transaction.atomic():
                controller.reserve([_line(product, 1)], reference="QC-5")

    def test_missing_product(self, controller, milk):
        ghost = SimpleNamespace(
            product_id="00000000-0000-0000-0000-000000000001", quantity=1
        )

        with pytest.raises(ProductNotFound):
            with transaction.atomic():
                controller.reserve([ghost], reference="QC-6")

    def test_non_positive_quantity(self, controller, milk):
        with pytest.raises(ValueError):
            with transaction.atomic():
                controller.reserve([_line(milk, 0)], reference="QC-7")

    def test_lock_timeout_is_retryable(self, milk):
        repository = MagicMock()
        repository.lock_many.side_effect = OperationalError("lock timeout")
        controller = StockReservationController(repository=repository)

        with pytest.raises(StockLockTimeout) as exc_info:
            with transaction.atomic():
                controller.reserve([_line(milk, 1)], reference="QC-8")

        assert exc_info.value.status_code == 503


@pytest.mark.django_db(transaction=True)
def test_reserve_outside_transaction_is_refused(milk):
    with pytest.raises(RuntimeError):
        StockReservationController().reserve([_line(milk, 1)], reference="QC-9")

    milk.refresh_from_db()
    assert milk.stock_quantity == 10


# ---------------------------------------------------------------------------
# release
# ---------------------------------------------------------------------------


class TestRelease:
    def test_restores_stock(self, controller, milk):
        with transaction.atomic():
            controller.reserve([_line(milk, 4)], reference="QC-10")
            movements = controller.release([_line(milk, 4)], reference="QC-10")

        milk.refresh_from_db()
        assert milk.stock_quantity == 10
        assert [m.action for m in movements] == [InventoryAction.STOCK_IN]

    def test_soft_deleted_product_gets_units_back(self, controller, milk):
        with transaction.atomic():
            controller.reserve([_line(milk, 2)], reference="QC-11")
        milk.delete()

        with transaction.atomic():
            controller.release([_line(milk, 2)], reference="QC-11")

        restored = Product.objects.get(id=milk.id)
        assert restored.stock_quantity == 10


# ---------------------------------------------------------------------------
# adjust
# ---------------------------------------------------------------------------


class TestAdjust:
    def test_stock_in(self, controller, milk):
        movement = controller.adjust(
            milk.id, 5, InventoryAction.STOCK_IN, notes="Delivery"
        )

        assert (movement.previous_stock, movement.new_stock) == (10, 15)
        assert InventoryLog.objects.get(product=milk).notes == "Delivery"

    def test_stock_out(self, controller, milk):
        movement = controller.adjust(milk.id, 4, InventoryAction.STOCK_OUT)
        assert movement.new_stock == 6
        assert movement.quantity == -4

    def test_adjustment_sets_absolute_level(self, controller, milk):
        movement = controller.adjust(str(milk.id), 3, InventoryAction.ADJUSTMENT)

        milk.refresh_from_db()
        assert milk.stock_quantity == 3
        assert movement.quantity == -7

    def test_adjustment_to_zero(self, controller, milk):
        controller.adjust(milk.id, 0, InventoryAction.ADJUSTMENT)
        milk.refresh_from_db()
        assert milk.stock_quantity == 0

    def test_never_clamps(self, controller, bread):
        with pytest.raises(OutOfStock):
            controller.adjust(bread.id, 6, InventoryAction.STOCK_OUT)

        bread.refresh_from_db()
        assert bread.stock_quantity == 5
        assert InventoryLog.objects.count() == 0

    def test_negative_absolute_level(self, controller, bread):
        with pytest.raises(OutOfStock):
            controller.adjust(bread.id, -1, InventoryAction.ADJUSTMENT)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_delta_must_be_positive(self, controller, milk, quantity):
        with pytest.raises(ValueError):
            controller.adjust(milk.id, quantity, InventoryAction.STOCK_IN)

    def test_unknown_action(self, controller, milk):
        with pytest.raises(ValueError):
            controller.adjust(milk.id, 1, "SHRINKAGE")

    def test_unknown_product(self, controller):
        with pytest.raises(ProductNotFound):
            controller.adjust("not-a-uuid", 1, InventoryAction.STOCK_IN)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class TestStockNotifications:
    def test_stock_changed_after_commit(
        self, controller, milk, published, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            controller.adjust(milk.id, 2, InventoryAction.STOCK_IN)

        assert published.names() == ["StockChanged"]
        event = published.events[0]
        assert (event.previous_stock, event.new_stock) == (10, 12)

    def test_low_stock_crossing(
        self, controller, make_product, published, django_capture_on_commit_callbacks
    ):
        product = make_product(stock=5, threshold=2)

        with django_capture_on_commit_callbacks(execute=True):
            controller.adjust(product.id, 3, InventoryAction.STOCK_OUT)
            controller.adjust(product.id, 1, InventoryAction.STOCK_OUT)

        assert published.names().count("LowStockReached") == 1

    def test_nothing_delivered_on_rollback(
        self, controller, milk, bread, published, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(OutOfStock):
                with transaction.atomic():
                    controller.reserve(
                        [_line(milk, 1), _line(bread, 9)], reference="QC-12"
                    )

        assert published.events == []
