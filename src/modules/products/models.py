"""Product and InventoryLog models.

Business rules implemented:
- SKU is unique and normalised to uppercase.
- ``stock_quantity`` can never be negative (unsigned column + check
  constraint); it is written only by ``modules.products.inventory``.
- Every stock change is paired with an append-only ``InventoryLog`` row
  holding previous/new value, signed delta and actor.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import AppendOnlyModel, SoftDeleteModel
from modules.products.constants import DEFAULT_LOW_STOCK_THRESHOLD, InventoryAction

logger = structlog.get_logger(__name__)


class Product(SoftDeleteModel):
    """Sellable catalogue item.

    ``discounted_price`` (when set) is the price actually charged; ``price``
    is kept as the list price for display and order snapshots.
    """

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    discounted_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(
        default=DEFAULT_LOW_STOCK_THRESHOLD
    )
    is_available = models.BooleanField(default=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_available"], name="products_available_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name="products_stock_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Pricing / stock helpers
    # ------------------------------------------------------------------

    @property
    def selling_price(self) -> Decimal:
        """Price charged at checkout: the discounted price wins when set."""
        return self.discounted_price if self.discounted_price else self.price

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if (
            self.discounted_price is not None
            and self.price is not None
            and self.discounted_price > self.price
        ):
            raise ValidationError(
                {"discounted_price": "Discounted price cannot exceed the price."}
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product.created",
                product_id=str(self.id),
                sku=self.sku,
            )

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"


class InventoryLog(AppendOnlyModel):
    """Append-only ledger of every stock mutation.

    ``quantity`` is the signed delta (negative for stock leaving the shelf)
    so that ``previous_stock + quantity == new_stock`` always holds.
    ``reference`` links the movement to its cause, e.g. an order number.
    """

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="inventory_logs",
    )
    action = models.CharField(max_length=20, choices=InventoryAction.choices)
    quantity = models.IntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    reference = models.CharField(max_length=64, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "inventory_logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["product", "-created_at"],
                name="invlog_product_created_idx",
            ),
            models.Index(fields=["reference"], name="invlog_reference_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} {self.action} {self.quantity:+d}"
