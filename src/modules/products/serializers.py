"""Product DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.products.constants import InventoryAction
from modules.products.models import InventoryLog, Product


class ProductSerializer(serializers.ModelSerializer):
    """Read serializer for the Product resource."""

    selling_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True
    )

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "description",
            "price",
            "discounted_price",
            "selling_price",
            "stock_quantity",
            "low_stock_threshold",
            "is_available",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=InventoryAction.choices)
    quantity = serializers.IntegerField()
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    reference = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=64
    )


class InventoryLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryLog
        fields = [
            "id",
            "product_id",
            "action",
            "quantity",
            "previous_stock",
            "new_stock",
            "reference",
            "notes",
            "performed_by_id",
            "created_at",
        ]
        read_only_fields = fields
