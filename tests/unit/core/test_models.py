"""Unit tests for BaseModel, SoftDeleteModel and AppendOnlyModel.

Exercised through concrete models of the project: ``Product`` (soft
delete) and ``InventoryLog`` (append-only ledger).
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from modules.core.exceptions import ImmutableRecordError
from modules.products.constants import InventoryAction
from modules.products.models import InventoryLog, Product

pytestmark = pytest.mark.unit


@pytest.fixture()
def ledger_row(milk):
    return InventoryLog.objects.create(
        product=milk,
        action=InventoryAction.STOCK_IN,
        quantity=5,
        previous_stock=10,
        new_stock=15,
    )


# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class TestBaseModel:
    def test_id_is_uuid_version_7(self, milk):
        assert isinstance(milk.id, uuid.UUID)
        assert milk.id.version == 7

    def test_ids_are_time_ordered(self, make_product):
        first = make_product()
        second = make_product()
        assert str(first.id) < str(second.id)

    def test_id_is_not_editable(self):
        assert Product._meta.get_field("id").editable is False

    def test_save_with_update_fields_includes_updated_at(self, milk):
        later = timezone.now() + timedelta(minutes=5)
        with freeze_time(later):
            milk.name = "Full Cream Milk 1L"
            milk.save(update_fields=["name"])

        milk.refresh_from_db()
        assert milk.updated_at >= later - timedelta(seconds=1)
        assert milk.created_at < milk.updated_at


# ---------------------------------------------------------------------------
# SoftDeleteModel
# ---------------------------------------------------------------------------


class TestSoftDeleteModel:
    def test_delete_sets_deleted_at(self, milk):
        result = milk.delete()

        milk.refresh_from_db()
        assert milk.is_deleted is True
        assert result == (1, {"products.Product": 1})

    def test_delete_is_noop_if_already_deleted(self, milk):
        milk.delete()
        assert milk.delete() == (0, {})

    def test_alive_and_dead(self, milk, bread):
        bread.delete()

        assert list(Product.objects.alive()) == [milk]
        assert list(Product.objects.dead()) == [bread]
        assert Product.objects.count() == 2

    def test_bulk_delete_is_soft(self, milk, bread):
        count, _ = Product.objects.all().delete()

        assert count == 2
        assert Product.objects.dead().count() == 2

    def test_restore(self, milk):
        milk.delete()
        milk.restore()

        milk.refresh_from_db()
        assert milk.deleted_at is None


# ---------------------------------------------------------------------------
# AppendOnlyModel
# ---------------------------------------------------------------------------


class TestAppendOnlyModel:
    def test_rows_cannot_be_updated(self, ledger_row):
        ledger_row.notes = "rewritten"

        with pytest.raises(ImmutableRecordError):
            ledger_row.save()

    def test_rows_cannot_be_deleted(self, ledger_row):
        with pytest.raises(ImmutableRecordError):
            ledger_row.delete()

        assert InventoryLog.objects.filter(id=ledger_row.id).exists()
