"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the checkout flow and the
order state machine need: aggregate creation, row locking, status history
and idempotency-key look-up.

The service layer depends exclusively on this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and OrderStatusHistory
    records.  Writers must run inside the caller's transaction.
    """

    @abstractmethod
    def create(self, fields: Dict[str, Any], items: Iterable[Dict[str, Any]]) -> Order:
        """Insert an order and its item snapshots."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def update_fields(self, order: Order, **fields: Any) -> Order:
        """Write the given fields of an already locked order."""

    @abstractmethod
    def list_items(self, order: Order) -> List[OrderItem]:
        """Live line items of an order."""

    @abstractmethod
    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        notes: str = "",
        user: Any = None,
    ) -> OrderStatusHistory:
        """Append a status change to the order's audit trail."""

    @abstractmethod
    def stale_pending_ids(self, created_before: datetime) -> List[Any]:
        """Ids of PENDING gateway orders created before the cutoff."""
