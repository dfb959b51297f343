"""Django ORM implementation of the Address repository."""

from __future__ import annotations

from typing import Any, Optional

from django.core.exceptions import ValidationError

from modules.addresses.models import Address
from modules.addresses.repositories.interfaces import IAddressRepository


class AddressDjangoRepository(IAddressRepository):
    def get_for_user(self, address_id: Any, user_id: Any) -> Optional[Address]:
        """Returns ``None`` for missing, foreign or malformed IDs."""
        try:
            return Address.objects.filter(id=address_id, user_id=user_id).first()
        except (ValueError, ValidationError):
            return None
