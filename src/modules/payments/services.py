"""Payment reconciler: the only writer of ``Payment`` after checkout.

Evidence arrives from two untrusted, unordered and possibly duplicated
sources for the same logical event: the client's verification call and
the provider's webhook.  Every path ends in ``reconcile()``, which:

1. locks the order row, then the payment row, so racing callbacks for the
   same payment serialize;
2. returns early if the payment is already COMPLETED (idempotency guard,
   no side effect is repeated);
3. otherwise records the outcome and, on success, confirms the order
   through the order state machine in the same transaction.

Provider calls that create or move money (intent creation, refund) go
through the adapter selected for the order's payment method.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.state_machine import OrderStateMachine
from modules.payments.constants import GatewayOutcome, PaymentStatus, ReconcileSource
from modules.payments.events import (
    PaymentCompleted,
    PaymentFailedEvent,
    PaymentRefunded,
)
from modules.payments.exceptions import (
    AuthenticityFailed,
    IllegalPaymentTransition,
    InvalidRefundAmount,
    OrderNotPayable,
    PaymentAlreadyCompleted,
    PaymentFailed,
    PaymentNotFound,
    PaymentNotRequired,
    PaymentNotSettled,
    RefundNotAllowed,
)
from modules.payments.gateways import GatewayRegistry
from modules.payments.gateways.base import PaymentEvidence
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from shared.infrastructure.notifications import (
    NotificationEmitter,
    notification_emitter,
)

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.dtos import RefundDTO, VerifyPaymentDTO
    from modules.payments.gateways.base import GatewayIntent
    from modules.payments.models import Payment
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

_HISTORY_NOTES = {
    ReconcileSource.CLIENT: "Payment verified",
    ReconcileSource.WEBHOOK: "Payment confirmed via webhook",
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconcileResult:
    order_id: UUID
    payment_id: UUID
    payment_status: str
    order_status: str
    duplicate: bool = False
    failure_reason: str = ""

    @property
    def success(self) -> bool:
        return self.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)


@dataclass(frozen=True)
class RefundOutcome:
    order_id: UUID
    refund_id: str
    amount: Decimal
    order_status: str
    duplicate: bool = False


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class PaymentReconciler:
    """Application service for payment use-cases.

    Receives repositories, the gateway registry and the order state machine
    via constructor injection; defaults build the Django-backed versions.
    """

    def __init__(
        self,
        payment_repository: Optional[IPaymentRepository] = None,
        order_repository: Optional[IOrderRepository] = None,
        gateways: Optional[GatewayRegistry] = None,
        state_machine: Optional[OrderStateMachine] = None,
        emitter: Optional[NotificationEmitter] = None,
    ) -> None:
        self._payment_repo = payment_repository or PaymentDjangoRepository()
        self._order_repo = order_repository or OrderDjangoRepository()
        self._gateways = gateways or GatewayRegistry.from_settings()
        self._emitter = emitter or notification_emitter
        self._state_machine = state_machine or OrderStateMachine(
            self._order_repo, emitter=self._emitter
        )

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate(self, order_id: Any, user: Any = None) -> GatewayIntent:
        """Create the provider-side payment object for a PENDING order.

        The provider is called without holding any lock; the intent is then
        recorded (PROCESSING) under the order and payment row locks.

        Raises:
            OrderNotFound: unknown order, or not owned by ``user``.
            PaymentNotRequired: the order is cash on delivery.
            OrderNotPayable: the order is no longer PENDING.
            PaymentAlreadyCompleted: the payment was already captured.
            GatewayUnavailable: the provider is not configured or unreachable.
        """
        order = self._get_owned_order(order_id, user)
        payment = self._get_payment(order.id)
        self._check_payable(order, payment)

        gateway = self._gateways.get(order.payment_method)
        intent = gateway.create_intent(order, payment)

        with transaction.atomic():
            order = self._order_repo.get_for_update(order.id)
            payment = self._payment_repo.get_for_update(payment.id)
            self._check_payable(order, payment)
            if payment.status != PaymentStatus.PROCESSING:
                self._check_payment_edge(payment, PaymentStatus.PROCESSING)
            self._payment_repo.update_fields(
                payment,
                status=PaymentStatus.PROCESSING,
                gateway_order_id=intent.gateway_order_id,
                failure_reason="",
            )

        logger.info(
            "payment.initiated",
            order_id=str(order.id),
            payment_id=str(payment.id),
            provider=gateway.provider,
            gateway_order_id=intent.gateway_order_id,
        )
        return intent

    # ------------------------------------------------------------------
    # Evidence intake
    # ------------------------------------------------------------------

    def verify(self, dto: VerifyPaymentDTO, user: Any = None) -> ReconcileResult:
        """Reconcile client-submitted evidence.

        An authenticity failure is recorded on the payment (committed) and
        then raised; the order is not advanced.

        Raises:
            OrderNotFound / PaymentNotFound: unknown order or payment.
            AuthenticityFailed: the evidence does not verify.
            PaymentFailed: the gateway reports the payment as failed.
            PaymentNotSettled: the payment is still in progress at the gateway.
            GatewayUnavailable: the provider is not configured or unreachable.
        """
        order = self._get_owned_order(dto.order_id, user)
        payment = self._get_payment(order.id)
        gateway = self._gateways.get(order.payment_method)
        evidence = PaymentEvidence(
            order_id=str(order.id),
            gateway_payment_id=dto.gateway_payment_id,
            gateway_order_id=dto.gateway_order_id,
            signature=dto.signature,
        )
        try:
            evidence = gateway.verify_client_callback(evidence)
            self._check_gateway_order(payment, evidence)
        except AuthenticityFailed as exc:
            self._record_authenticity_failure(payment.id, str(exc))
            raise

        result = self.reconcile(evidence, source=ReconcileSource.CLIENT)
        if result.payment_status == PaymentStatus.FAILED:
            raise PaymentFailed(result.failure_reason, order_id=str(order.id))
        return result

    def handle_webhook(
        self, provider: str, body: bytes, headers: Mapping[str, str]
    ) -> Optional[ReconcileResult]:
        """Verify and reconcile a provider webhook.

        Returns ``None`` when the delivery carries no state change: bad
        signature (logged, never surfaced to the provider), an event type we
        do not act on, or a payment we do not know.

        Raises:
            UnknownPaymentProvider: no gateway registered under ``provider``.
            GatewayUnavailable: the gateway is registered but not configured.
        """
        method, gateway = self._gateways.for_provider(provider)
        log = logger.bind(provider=provider, payment_method=method)

        try:
            evidence = gateway.parse_webhook(body, headers)
        except AuthenticityFailed as exc:
            log.warning("payment.webhook_rejected", reason=str(exc))
            return None

        log = log.bind(
            event_type=evidence.event_type,
            gateway_payment_id=evidence.gateway_payment_id,
        )
        if not evidence.is_terminal:
            log.info("payment.webhook_ignored")
            return None

        try:
            return self.reconcile(evidence, source=ReconcileSource.WEBHOOK)
        except PaymentNotFound:
            log.warning("payment.webhook_unmatched")
            return None
        except AuthenticityFailed as exc:
            log.warning("payment.webhook_rejected", reason=str(exc))
            return None

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    @transaction.atomic
    def reconcile(self, evidence: PaymentEvidence, *, source: str) -> ReconcileResult:
        """Apply authenticated evidence exactly once.

        Raises:
            PaymentNotFound: the evidence matches no payment.
            AuthenticityFailed: the evidence contradicts what is on record.
            PaymentNotSettled: the evidence is not a final outcome.
        """
        reference = self._find_payment(evidence)
        order = self._order_repo.get_for_update(reference.order_id)
        payment = self._payment_repo.get_for_update(reference.id)
        if order is None or payment is None:
            raise PaymentNotFound("Payment not found.")

        log = logger.bind(
            order_id=str(order.id),
            payment_id=str(payment.id),
            source=source,
            outcome=evidence.outcome,
        )

        if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            log.info("payment.idempotency_hit", payment_status=payment.status)
            return self._result(order, payment, duplicate=True)

        self._check_gateway_order(payment, evidence)

        if not evidence.is_terminal:
            log.info("payment.not_settled")
            raise PaymentNotSettled(
                "Payment has not completed yet; retry once it is confirmed.",
                order_id=str(order.id),
            )
        if evidence.outcome == GatewayOutcome.FAILED:
            return self._record_failure(order, payment, evidence, source, log)
        return self._record_success(order, payment, evidence, source, log)

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(self, dto: RefundDTO, actor: Any = None) -> RefundOutcome:
        """Refund a captured payment and move the order to REFUNDED.

        The provider refund is issued while the payment row is locked, so
        two concurrent refund requests cannot both reach the provider.  A
        provider error rolls everything back.  A partial amount is recorded
        on the payment; ``Order.total`` never changes.

        Raises:
            PaymentNotFound: the order has no payment.
            RefundNotAllowed: payment not captured, or order past CONFIRMED.
            InvalidRefundAmount: amount above the captured amount.
            GatewayUnavailable: the provider is not configured or unreachable.
        """
        reference = self._get_payment(dto.order_id)

        with transaction.atomic():
            order = self._order_repo.get_for_update(reference.order_id)
            payment = self._payment_repo.get_for_update(reference.id)
            log = logger.bind(order_id=str(order.id), payment_id=str(payment.id))

            if payment.status == PaymentStatus.REFUNDED:
                log.info("payment.refund_idempotency_hit")
                return RefundOutcome(
                    order_id=order.id,
                    refund_id=payment.refund_id,
                    amount=payment.refund_amount,
                    order_status=order.status,
                    duplicate=True,
                )
            if payment.status != PaymentStatus.COMPLETED:
                raise RefundNotAllowed(
                    f"Payment is {payment.status}; "
                    "only completed payments can be refunded."
                )
            already_cancelled = order.status == OrderStatus.CANCELLED
            refundable = order.can_transition_to(OrderStatus.REFUNDED)
            if not already_cancelled and not refundable:
                raise RefundNotAllowed(
                    f"Order in status {order.status} cannot be refunded."
                )

            amount = payment.amount if dto.amount is None else dto.amount
            if amount > payment.amount:
                raise InvalidRefundAmount(
                    f"Refund amount {amount} exceeds captured amount {payment.amount}."
                )

            gateway = self._gateways.get(payment.method)
            refund = gateway.refund(
                payment.gateway_payment_id,
                amount,
                reason=dto.reason,
                idempotency_key=f"refund-{payment.id}",
            )

            self._payment_repo.update_fields(
                payment,
                status=PaymentStatus.REFUNDED,
                refund_id=refund.refund_id,
                refund_amount=amount,
                refunded_at=timezone.now(),
                requires_refund=False,
            )
            if not already_cancelled:
                order = self._state_machine.transition(
                    order.id,
                    OrderStatus.REFUNDED,
                    dto.reason or "Refund processed",
                    actor=actor,
                )

            payment.add_domain_event(
                PaymentRefunded(
                    aggregate_id=payment.id,
                    order_id=order.id,
                    user_id=order.user_id,
                    refund_id=refund.refund_id,
                    amount=amount,
                )
            )
            self._emitter.emit_all(payment.pull_domain_events())

        log.info(
            "payment.refund_recorded", refund_id=refund.refund_id, amount=str(amount)
        )
        return RefundOutcome(
            order_id=order.id,
            refund_id=refund.refund_id,
            amount=amount,
            order_status=order.status,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_success(
        self,
        order: Order,
        payment: Payment,
        evidence: PaymentEvidence,
        source: str,
        log: Any,
    ) -> ReconcileResult:
        claimed = self._payment_repo.get_by_gateway_payment_id(
            evidence.gateway_payment_id
        )
        if claimed is not None and claimed.id != payment.id:
            log.warning("payment.evidence_reused", other_payment_id=str(claimed.id))
            raise AuthenticityFailed("Gateway payment belongs to another order.")

        if payment.status != PaymentStatus.PROCESSING:
            # Evidence may outrun the recorded intent or follow a failed
            # attempt; the implied path still has to pass through PROCESSING.
            self._check_payment_edge(payment, PaymentStatus.PROCESSING)
        requires_refund = order.status == OrderStatus.CANCELLED
        self._payment_repo.update_fields(
            payment,
            status=PaymentStatus.COMPLETED,
            gateway_payment_id=evidence.gateway_payment_id,
            gateway_signature=evidence.signature,
            paid_at=timezone.now(),
            failure_reason="",
            requires_refund=requires_refund,
        )

        if order.status == OrderStatus.PENDING:
            order = self._state_machine.transition(
                order.id, OrderStatus.CONFIRMED, _HISTORY_NOTES[source]
            )
        elif requires_refund:
            log.error("payment.captured_for_cancelled_order")

        payment.add_domain_event(
            PaymentCompleted(
                aggregate_id=payment.id,
                order_id=order.id,
                user_id=order.user_id,
                amount=payment.amount,
                method=payment.method,
                gateway_payment_id=evidence.gateway_payment_id,
                source=source,
                requires_refund=requires_refund,
            )
        )
        self._emitter.emit_all(payment.pull_domain_events())
        log.info("payment.reconciled", order_status=order.status)
        return self._result(order, payment)

    def _record_failure(
        self,
        order: Order,
        payment: Payment,
        evidence: PaymentEvidence,
        source: str,
        log: Any,
    ) -> ReconcileResult:
        reason = evidence.failure_reason or "Payment failed"
        if payment.status == PaymentStatus.FAILED:
            log.info("payment.idempotency_hit", payment_status=payment.status)
            return self._result(order, payment, duplicate=True)

        self._check_payment_edge(payment, PaymentStatus.FAILED)
        self._payment_repo.update_fields(
            payment, status=PaymentStatus.FAILED, failure_reason=reason
        )
        payment.add_domain_event(
            PaymentFailedEvent(
                aggregate_id=payment.id,
                order_id=order.id,
                user_id=order.user_id,
                method=payment.method,
                reason=reason,
                source=source,
            )
        )
        self._emitter.emit_all(payment.pull_domain_events())
        log.info("payment.failure_recorded", reason=reason)
        return self._result(order, payment)

    def _record_authenticity_failure(self, payment_id: Any, reason: str) -> None:
        with transaction.atomic():
            payment = self._payment_repo.get_for_update(payment_id)
            log = logger.bind(payment_id=str(payment_id), reason=reason)
            if payment is None or not payment.can_transition_to(PaymentStatus.FAILED):
                log.warning("payment.authenticity_failed", recorded=False)
                return
            self._payment_repo.update_fields(
                payment, status=PaymentStatus.FAILED, failure_reason=reason
            )
        log.warning("payment.authenticity_failed", recorded=True)

    def _find_payment(self, evidence: PaymentEvidence) -> Payment:
        payment = None
        if evidence.order_id:
            payment = self._payment_repo.get_for_order(evidence.order_id)
        if payment is None:
            payment = self._payment_repo.get_by_gateway_payment_id(
                evidence.gateway_payment_id
            )
        if payment is None:
            payment = self._payment_repo.get_by_gateway_order_id(
                evidence.gateway_order_id
            )
        if payment is None:
            raise PaymentNotFound(
                "Payment not found.",
                gateway_payment_id=evidence.gateway_payment_id,
                gateway_order_id=evidence.gateway_order_id,
            )
        return payment

    @staticmethod
    def _check_gateway_order(payment: Payment, evidence: PaymentEvidence) -> None:
        if (
            payment.gateway_order_id
            and evidence.gateway_order_id
            and payment.gateway_order_id != evidence.gateway_order_id
        ):
            raise AuthenticityFailed("Gateway order does not match this payment.")

    @staticmethod
    def _check_payment_edge(payment: Payment, target: str) -> None:
        if not payment.can_transition_to(target):
            raise IllegalPaymentTransition(payment.status, target)

    @staticmethod
    def _check_payable(order: Order, payment: Payment) -> None:
        if not order.uses_gateway:
            raise PaymentNotRequired("Cash on delivery orders are paid at the door.")
        if payment.status == PaymentStatus.COMPLETED:
            raise PaymentAlreadyCompleted("Payment already completed.")
        if order.status != OrderStatus.PENDING:
            raise OrderNotPayable(f"Order is {order.status}; it cannot be paid.")

    def _get_owned_order(self, order_id: Any, user: Any) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if user is not None and not user.is_staff and order.user_id != user.pk:
            raise OrderNotFound(order_id)
        return order

    def _get_payment(self, order_id: Any) -> Payment:
        payment = self._payment_repo.get_for_order(order_id)
        if payment is None:
            raise PaymentNotFound("Payment not found.", order_id=str(order_id))
        return payment

    @staticmethod
    def _result(
        order: Order, payment: Payment, duplicate: bool = False
    ) -> ReconcileResult:
        return ReconcileResult(
            order_id=order.id,
            payment_id=payment.id,
            payment_status=payment.status,
            order_status=order.status,
            duplicate=duplicate,
            failure_reason=payment.failure_reason,
        )
