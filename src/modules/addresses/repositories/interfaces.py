"""Address repository interface (read side used by checkout)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from modules.addresses.models import Address


class IAddressRepository(ABC):
    @abstractmethod
    def get_for_user(self, address_id: Any, user_id: Any) -> Optional[Address]:
        """Return the address only when it belongs to ``user_id``."""
