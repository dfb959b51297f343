"""Product / inventory domain constants."""

from django.db import models


class InventoryAction(models.TextChoices):
    STOCK_IN = "STOCK_IN", "Stock in"
    STOCK_OUT = "STOCK_OUT", "Stock out"
    ADJUSTMENT = "ADJUSTMENT", "Adjustment"


DEFAULT_LOW_STOCK_THRESHOLD = 10
