"""Delivery address owned by a user.

Addresses are managed by the account service; checkout only reads them
and copies a snapshot onto the order so later edits never rewrite where
a past order was delivered.
"""

from __future__ import annotations

from typing import Any, Dict

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel


class Address(BaseModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="addresses",
    )
    full_name = models.CharField(max_length=150)
    phone = models.CharField(max_length=20)
    address_line1 = models.CharField(max_length=255)
    address_line2 = models.CharField(max_length=255, blank=True, default="")
    landmark = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=12)
    country = models.CharField(max_length=64, default="India")
    is_default = models.BooleanField(default=False)

    class Meta:
        db_table = "addresses"
        ordering = ["-is_default", "-created_at"]
        indexes = [
            models.Index(fields=["user", "-is_default"], name="addresses_user_idx"),
        ]

    SNAPSHOT_FIELDS = (
        "full_name",
        "phone",
        "address_line1",
        "address_line2",
        "landmark",
        "city",
        "state",
        "postal_code",
        "country",
    )

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data copy stored on the order at checkout."""
        data: Dict[str, Any] = {"id": str(self.id)}
        data.update({field: getattr(self, field) for field in self.SNAPSHOT_FIELDS})
        return data

    def __str__(self) -> str:
        return f"{self.full_name}, {self.address_line1}, {self.city}"
