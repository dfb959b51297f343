"""Base repository contract shared by the aggregate repositories.

Orders, products and payments are all mutated under a row lock, so the
locked read sits in the base contract next to the plain one.  Services
depend on these interfaces; only ``django_repository`` modules touch the
ORM.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from django.db import models

T = TypeVar("T", bound=models.Model)


class IRepository(ABC, Generic[T]):
    """Persistence for one aggregate root ``T`` (``Order``, ``Product``...)."""

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        """Plain read; ``None`` when the row does not exist."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[T]:
        """``SELECT ... FOR UPDATE``; must run inside ``transaction.atomic``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet:
        """Queryset of live rows narrowed by ORM look-ups."""

    @abstractmethod
    def save(self, entity: T) -> T:
        ...

    @abstractmethod
    def delete(self, id: Any) -> bool:
        """Soft delete where the model allows it; ``False`` if missing."""
