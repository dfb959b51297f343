"""Payment model: one per order, mutated only by the payment reconciler.

``gateway_payment_id`` is unique once assigned and acts as the natural
idempotency key for provider callbacks.  Refunds are recorded here
(``refund_id`` / ``refund_amount`` / ``refunded_at``); the order total is
never rewritten.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import PaymentMethod
from modules.payments.constants import VALID_PAYMENT_TRANSITIONS, PaymentStatus
from shared.domain.events import DomainEventMixin


class Payment(DomainEventMixin, BaseModel):
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="INR")
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    gateway_order_id = models.CharField(max_length=255, blank=True, default="")
    gateway_payment_id = models.CharField(
        max_length=255, unique=True, null=True, blank=True
    )
    gateway_signature = models.CharField(max_length=512, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    refund_id = models.CharField(max_length=255, blank=True, default="")
    refund_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    refunded_at = models.DateTimeField(null=True, blank=True)
    # Captured after the order was already cancelled: money must go back.
    requires_refund = models.BooleanField(default=False)

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="payments_status_idx"),
            models.Index(fields=["gateway_order_id"], name="payments_gw_order_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=Decimal("0.00")),
                name="payments_amount_non_negative",
            ),
        ]

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_PAYMENT_TRANSITIONS.get(self.status, set())

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def __str__(self) -> str:
        return f"Payment({self.order_id}, {self.method}, {self.status})"
