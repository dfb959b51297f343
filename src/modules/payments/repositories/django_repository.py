"""Django ORM implementation of the Payment repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError

from modules.core.exceptions import ImmutableRecordError
from modules.payments.models import Payment
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentRepository):
    """Concrete Payment repository backed by Django ORM."""

    def create(self, **fields: Any) -> Payment:
        return Payment.objects.create(**fields)

    def get_by_id(self, id: Any) -> Optional[Payment]:
        try:
            return Payment.objects.select_related("order").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None):
        queryset = Payment.objects.select_related("order")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_for_order(self, order_id: Any) -> Optional[Payment]:
        try:
            return (
                Payment.objects.select_related("order")
                .filter(order_id=order_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Payment]:
        try:
            return Payment.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Payment]:
        if not gateway_payment_id:
            return None
        return Payment.objects.filter(gateway_payment_id=gateway_payment_id).first()

    def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        if not gateway_order_id:
            return None
        return Payment.objects.filter(gateway_order_id=gateway_order_id).first()

    def update_fields(self, payment: Payment, **fields: Any) -> Payment:
        for name, value in fields.items():
            setattr(payment, name, value)
        payment.save(update_fields=list(fields))
        return payment

    def save(self, entity: Payment) -> Payment:
        entity.save()
        return entity

    def delete(self, id: Any) -> bool:
        raise ImmutableRecordError("Payments are never deleted.")
