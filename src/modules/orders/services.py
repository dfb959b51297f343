"""Order service layer (Use Cases).

Orchestrates checkout, status management and cancellation.  Every write
operation is atomic: the service defines the unit-of-work boundary and the
stock controller, the state machine and the repositories join it.

Checkout is all-or-nothing: the stock reservation, the order and its
items, the payment row, the initial history entry, the COD confirmation and
the cart clean-up commit together or not at all.  Notifications are queued
on the emitter and delivered only after commit.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Optional, Tuple

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.addresses.exceptions import AddressNotFound
from modules.addresses.repositories.django_repository import AddressDjangoRepository
from modules.cart.pricing import price_line, price_lines
from modules.cart.repositories.django_repository import CartDjangoRepository
from modules.core.exceptions import RetryableError
from modules.orders.constants import GATEWAY_METHODS, OrderStatus, PaymentMethod
from modules.orders.events import OrderPlaced
from modules.orders.exceptions import (
    BelowMinimumOrder,
    EmptyCart,
    IdempotencyKeyReused,
    IllegalTransition,
    OrderNotCancellable,
    OrderNotFound,
)
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.state_machine import OrderStateMachine
from modules.payments.constants import PaymentStatus
from modules.payments.gateways import GatewayRegistry
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.products.inventory import StockReservationController
from shared.infrastructure.notifications import (
    NotificationEmitter,
    notification_emitter,
)

if TYPE_CHECKING:
    from modules.addresses.repositories.interfaces import IAddressRepository
    from modules.cart.repositories.interfaces import ICartRepository
    from modules.orders.dtos import PlaceOrderDTO, UpdateOrderStatusDTO
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

COD_CONFIRMATION_NOTE = "Cash on delivery order confirmed"
STALE_ORDER_NOTE = "Payment not received in time"


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and collaborators via constructor injection (DIP);
    ``build_order_service()`` wires the Django-backed defaults.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        cart_repository: ICartRepository,
        address_repository: IAddressRepository,
        inventory: StockReservationController,
        state_machine: OrderStateMachine,
        gateways: GatewayRegistry,
        emitter: NotificationEmitter,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._cart_repo = cart_repository
        self._address_repo = address_repository
        self._inventory = inventory
        self._state_machine = state_machine
        self._gateways = gateways
        self._emitter = emitter

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def place_order(self, dto: PlaceOrderDTO, actor: Any = None) -> Tuple[Order, bool]:
        """Turn the caller's cart into an order.

        Returns ``(order, created)``; ``created`` is ``False`` when the
        idempotency key replays an earlier checkout.

        Raises:
            IdempotencyKeyReused: the key belongs to another customer.
            AddressNotFound: the address is missing or not the caller's.
            EmptyCart: nothing to check out.
            GatewayUnavailable: the payment method cannot be used right now.
            ProductNotFound / ProductUnavailable / OutOfStock: stock check.
            BelowMinimumOrder: subtotal under ``STORE_MIN_ORDER_AMOUNT``.
            StockLockTimeout: stock rows stayed locked too long; retry.
        """
        log = logger.bind(
            user_id=str(dto.user_id),
            payment_method=dto.payment_method,
            idempotency_key=dto.idempotency_key,
        )

        if dto.idempotency_key:
            existing = self._replay(dto)
            if existing is not None:
                log.info("order.idempotency_hit", order_id=str(existing.id))
                return existing, False

        try:
            order = self._place(dto, actor, log)
        except IntegrityError:
            # A concurrent request with the same key won the insert.
            existing = self._replay(dto) if dto.idempotency_key else None
            if existing is None:
                raise
            log.info("order.idempotency_race", order_id=str(existing.id))
            return existing, False

        return self._order_repo.get_by_id(order.id) or order, True

    @transaction.atomic
    def _place(self, dto: PlaceOrderDTO, actor: Any, log: Any) -> Order:
        log.info("order.checkout_started")

        address = self._address_repo.get_for_user(dto.address_id, dto.user_id)
        if address is None:
            raise AddressNotFound(dto.address_id)

        cart_items = self._cart_repo.list_items(dto.user_id)
        if not cart_items:
            raise EmptyCart("Your cart is empty.")

        if dto.payment_method in GATEWAY_METHODS:
            self._gateways.get(dto.payment_method)

        order_number = Order.next_order_number()
        reservation = self._inventory.reserve(
            cart_items, reference=order_number, actor=actor
        )
        products = reservation.products
        breakdown = price_lines(
            price_line(products[item.product_id], item.quantity) for item in cart_items
        )

        minimum = settings.STORE_MIN_ORDER_AMOUNT
        if minimum and breakdown.subtotal < minimum:
            log.info("order.below_minimum", subtotal=str(breakdown.subtotal))
            raise BelowMinimumOrder(breakdown.subtotal, minimum)

        order = self._order_repo.create(
            {
                "order_number": order_number,
                "user_id": dto.user_id,
                "status": OrderStatus.PENDING,
                "payment_method": dto.payment_method,
                "subtotal": breakdown.subtotal,
                "delivery_fee": breakdown.delivery_fee,
                "tax": breakdown.tax,
                "total": breakdown.total,
                "address": address,
                "delivery_address": address.snapshot(),
                "notes": dto.notes,
                "idempotency_key": dto.idempotency_key,
            },
            [
                {
                    "product": products[line.product_id],
                    "product_name": line.product_name,
                    "product_sku": line.product_sku,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "discounted_price": line.discounted_price,
                }
                for line in breakdown.lines
            ],
        )
        self._payment_repo.create(
            order=order,
            amount=breakdown.total,
            currency=settings.PAYMENT_CURRENCY,
            method=dto.payment_method,
            status=PaymentStatus.PENDING,
        )
        self._state_machine.record_creation(order, actor=actor)

        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                status=order.status,
                payment_method=order.payment_method,
                total=order.total,
                item_count=breakdown.item_count,
            )
        )
        self._emitter.emit_all(order.pull_domain_events())

        if dto.payment_method == PaymentMethod.CASH_ON_DELIVERY:
            self._state_machine.transition(
                order.id, OrderStatus.CONFIRMED, COD_CONFIRMATION_NOTE, actor=actor
            )

        self._cart_repo.clear(dto.user_id)

        log.info(
            "order.placed",
            order_id=str(order.id),
            order_number=order.order_number,
            total=str(breakdown.total),
            item_count=breakdown.item_count,
        )
        return order

    def _replay(self, dto: PlaceOrderDTO) -> Optional[Order]:
        existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
        if existing is not None and existing.user_id != dto.user_id:
            raise IdempotencyKeyReused(
                "Idempotency-Key was already used by another request."
            )
        return existing

    # ------------------------------------------------------------------
    # Status management
    # ------------------------------------------------------------------

    def update_status(
        self, order_id: Any, dto: UpdateOrderStatusDTO, actor: Any = None
    ) -> Order:
        """Staff-driven fulfilment step (CONFIRMED -> PACKED -> ... -> DELIVERED).

        A gateway order becomes CONFIRMED only through a captured payment.

        Raises:
            OrderNotFound: order does not exist.
            IllegalTransition: the edge is not allowed.
        """
        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if order is None:
                raise OrderNotFound(order_id)
            if dto.status == OrderStatus.CONFIRMED and order.uses_gateway:
                payment = self._payment_repo.get_for_order(order.id)
                if payment is None or payment.status != PaymentStatus.COMPLETED:
                    logger.warning(
                        "order.confirm_without_payment", order_id=str(order.id)
                    )
                    raise IllegalTransition(order.status, dto.status)
            self._state_machine.transition(
                order.id, dto.status, dto.notes, actor=actor
            )
        return self.get_order(order_id)

    def cancel_order(self, order_id: Any, user: Any, notes: str = "") -> Order:
        """Cancel an unpaid order and put its stock back on the shelf.

        Customers may cancel only their own orders.  An unfinished payment is
        closed as FAILED; a captured one must go through a refund instead.

        Raises:
            OrderNotFound: order does not exist (or is not the caller's).
            OrderNotCancellable: the payment is already captured.
            IllegalTransition: the order is past the point of cancellation.
        """
        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if order is None or not self._can_access(order, user):
                raise OrderNotFound(order_id)
            self._cancel_locked(order, notes or "Cancelled by customer", actor=user)
        return self.get_order(order_id)

    def _cancel_locked(self, order: Order, note: str, *, actor: Any) -> None:
        """Cancel an order whose row lock the caller already holds."""
        payment = self._payment_repo.get_for_order(order.id)
        if payment is not None:
            payment = self._payment_repo.get_for_update(payment.id)
        if payment is not None and payment.status == PaymentStatus.COMPLETED:
            raise OrderNotCancellable(
                "The payment has been captured; refund the order instead.",
                order_id=str(order.id),
            )

        self._state_machine.transition(
            order.id, OrderStatus.CANCELLED, note, actor=actor
        )

        if payment is not None and payment.status in (
            PaymentStatus.PENDING,
            PaymentStatus.PROCESSING,
        ):
            self._payment_repo.update_fields(
                payment, status=PaymentStatus.FAILED, failure_reason="Order cancelled"
            )

    # ------------------------------------------------------------------
    # Stale order sweep
    # ------------------------------------------------------------------

    def cancel_stale_pending_orders(
        self, older_than: Optional[timedelta] = None
    ) -> int:
        """Cancel gateway orders left PENDING for longer than ``older_than``.

        Defaults to ``PENDING_ORDER_TTL_MINUTES``; a zero TTL disables the
        sweep.  Each order is cancelled in its own transaction so one
        failure does not hold back the rest.  Returns the number cancelled.
        """
        if older_than is None:
            minutes = settings.PENDING_ORDER_TTL_MINUTES
            if not minutes:
                logger.info("order.stale_sweep_disabled")
                return 0
            older_than = timedelta(minutes=minutes)

        cutoff = timezone.now() - older_than
        cancelled = 0
        for order_id in self._order_repo.stale_pending_ids(cutoff):
            log = logger.bind(order_id=str(order_id))
            try:
                with transaction.atomic():
                    order = self._order_repo.get_for_update(order_id)
                    if order is None or order.status != OrderStatus.PENDING:
                        continue
                    self._cancel_locked(order, STALE_ORDER_NOTE, actor=None)
            except (IllegalTransition, OrderNotCancellable, RetryableError) as exc:
                log.warning("order.stale_cancel_skipped", reason=str(exc))
                continue
            cancelled += 1
            log.info("order.stale_cancelled")

        logger.info("order.stale_sweep_finished", cancelled=cancelled)
        return cancelled

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any, user: Any = None) -> Order:
        """Retrieve a single order.

        With ``user`` given, non-staff callers only see their own orders.

        Raises:
            OrderNotFound: the order does not exist or is not visible.
        """
        order = self._order_repo.get_by_id(order_id)
        if order is None or (user is not None and not self._can_access(order, user)):
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, user: Any):
        """Orders visible to ``user``, newest first: all of them for staff."""
        if getattr(user, "is_staff", False):
            return self._order_repo.list()
        return self._order_repo.list({"user_id": user.pk})

    @staticmethod
    def _can_access(order: Order, user: Any) -> bool:
        return bool(getattr(user, "is_staff", False)) or order.user_id == user.pk


def build_order_service() -> OrderService:
    """Wire an ``OrderService`` with the Django-backed collaborators."""
    order_repo = OrderDjangoRepository()
    emitter = notification_emitter
    inventory = StockReservationController(emitter=emitter)
    return OrderService(
        order_repository=order_repo,
        payment_repository=PaymentDjangoRepository(),
        cart_repository=CartDjangoRepository(),
        address_repository=AddressDjangoRepository(),
        inventory=inventory,
        state_machine=OrderStateMachine(order_repo, inventory, emitter),
        gateways=GatewayRegistry.from_settings(),
        emitter=emitter,
    )
