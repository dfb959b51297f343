"""Payment repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.payments.models import Payment


class IPaymentRepository(IRepository["Payment"]):
    """Repository contract for payments.

    Payments are never deleted; the lock methods must run inside
    ``transaction.atomic``.
    """

    @abstractmethod
    def create(self, **fields: Any) -> Payment:
        """Insert the payment row created alongside an order."""

    @abstractmethod
    def get_for_order(self, order_id: Any) -> Optional[Payment]:
        """Unlocked read of the payment of an order."""

    @abstractmethod
    def get_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Payment]:
        """Look up by the provider's payment id."""

    @abstractmethod
    def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        """Look up by the provider-side order/intent id."""

    @abstractmethod
    def update_fields(self, payment: Payment, **fields: Any) -> Payment:
        """Write the given fields of an already locked payment."""
