"""Stock Reservation Controller: the only writer of ``Product.stock_quantity``.

Every stock change is a locked read followed by a conditional write inside
one database transaction:

1. ``SELECT ... FOR UPDATE`` on the affected product rows, acquired in
   ascending primary-key order so concurrent carts never deadlock.
2. Validate against the freshly locked values (never a cached read).
3. Write the new quantity and one append-only ``InventoryLog`` row.
4. Queue a ``StockChanged`` notification that is delivered only after the
   transaction commits.

Checkout reservations must join the caller's transaction (the order rows
are inserted in the same unit of work); administrative adjustments open
their own or join the caller's.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional, Tuple
from uuid import UUID

import structlog
from django.conf import settings
from django.db import OperationalError, connection, transaction

from modules.products.constants import InventoryAction
from modules.products.events import LowStockReached, StockChanged
from modules.products.exceptions import (
    OutOfStock,
    ProductNotFound,
    ProductUnavailable,
    StockLockTimeout,
)
from modules.products.repositories.django_repository import ProductDjangoRepository
from shared.infrastructure.notifications import (
    NotificationEmitter,
    notification_emitter,
)

if TYPE_CHECKING:
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReservationLine:
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class StockMovement:
    """One applied stock change (mirrors the InventoryLog row written)."""

    product: Product
    action: str
    quantity: int
    previous_stock: int
    new_stock: int


@dataclass(frozen=True)
class ReservationResult:
    reference: str
    movements: Tuple[StockMovement, ...]

    @property
    def products(self) -> Dict[UUID, Product]:
        """Locked product rows keyed by id, as read during the reservation."""
        return {movement.product.id: movement.product for movement in self.movements}

    @property
    def total_quantity(self) -> int:
        return sum(-movement.quantity for movement in self.movements)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class StockReservationController:
    def __init__(
        self,
        repository: Optional[IProductRepository] = None,
        emitter: Optional[NotificationEmitter] = None,
    ) -> None:
        self._repo = repository or ProductDjangoRepository()
        self._emitter = emitter or notification_emitter

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def reserve(
        self,
        lines: Iterable[Any],
        *,
        reference: str,
        actor: Any = None,
    ) -> ReservationResult:
        """Decrement stock for every line or for none.

        ``lines`` are objects with ``product_id`` and ``quantity`` (cart
        items, ``ReservationLine``); repeated products are merged.

        Must run inside the caller's ``transaction.atomic`` block: any
        exception rolls back every decrement made so far together with the
        caller's own writes.

        Raises:
            ProductNotFound: a line references a missing product.
            ProductUnavailable: a product is flagged as not for sale.
            OutOfStock: a line asks for more than is on hand.
            StockLockTimeout: a row lock could not be acquired in time.
        """
        self._require_transaction("reserve")
        requested = self._merge_lines(lines)
        log = logger.bind(reference=reference, line_count=len(requested))

        products = self._lock(requested, log)

        # Validate the whole cart before touching any row.
        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None:
                log.warning("stock.reserve_rejected", product_id=str(product_id))
                raise ProductNotFound(product_id)
            if not product.is_available:
                log.warning("stock.reserve_rejected", product_id=str(product_id))
                raise ProductUnavailable(product_id, product.name)
            if product.stock_quantity < quantity:
                log.warning(
                    "stock.insufficient",
                    product_id=str(product_id),
                    available=product.stock_quantity,
                    requested=quantity,
                )
                raise OutOfStock(
                    product_id, product.stock_quantity, quantity, product.name
                )

        movements = tuple(
            self._apply(
                products[product_id],
                -quantity,
                InventoryAction.STOCK_OUT,
                actor=actor,
                reference=reference,
                notes=f"Reserved for order {reference}",
            )
            for product_id, quantity in requested.items()
        )
        log.info("stock.reserved", units=sum(requested.values()))
        return ReservationResult(reference=reference, movements=movements)

    def release(
        self,
        items: Iterable[Any],
        *,
        reference: str,
        actor: Any = None,
        notes: str = "",
    ) -> List[StockMovement]:
        """Compensating ``STOCK_IN`` for each item of a cancelled/refunded order.

        Runs inside the caller's transaction (the order status change).
        Soft-deleted products still get their units back.
        """
        self._require_transaction("release")
        returned = self._merge_lines(items)
        log = logger.bind(reference=reference, line_count=len(returned))

        products = self._lock(returned, log, include_deleted=True)
        movements = []
        for product_id, quantity in returned.items():
            product = products.get(product_id)
            if product is None:
                log.error("stock.release_product_missing", product_id=str(product_id))
                continue
            movements.append(
                self._apply(
                    product,
                    quantity,
                    InventoryAction.STOCK_IN,
                    actor=actor,
                    reference=reference,
                    notes=notes or f"Restored from order {reference}",
                )
            )
        log.info("stock.released", units=sum(returned.values()))
        return movements

    # ------------------------------------------------------------------
    # Administrative adjustment
    # ------------------------------------------------------------------

    def adjust(
        self,
        product_id: Any,
        quantity: int,
        action: str,
        *,
        actor: Any = None,
        notes: str = "",
        reference: str = "",
    ) -> StockMovement:
        """Apply an administrative stock change under the product row lock.

        ``STOCK_IN`` / ``STOCK_OUT`` move ``quantity`` units (must be
        positive); ``ADJUSTMENT`` sets the absolute stock level to
        ``quantity``.  Never clamps: a change that would leave the stock
        negative is rejected.

        Raises:
            ProductNotFound: the product does not exist.
            OutOfStock: the change would make the stock negative.
            StockLockTimeout: the row lock could not be acquired in time.
        """
        if action not in InventoryAction.values:
            raise ValueError(f"Unknown inventory action {action!r}.")
        if action != InventoryAction.ADJUSTMENT and quantity <= 0:
            raise ValueError(f"{action} quantity must be positive, got {quantity}.")
        product_key = self._coerce_id(product_id)

        log = logger.bind(
            product_id=str(product_id), action=action, reference=reference
        )

        with transaction.atomic():
            products = self._lock({product_key: quantity}, log)
            product = products.get(product_key)
            if product is None:
                raise ProductNotFound(product_id)

            previous = product.stock_quantity
            if action == InventoryAction.STOCK_IN:
                target = previous + quantity
            elif action == InventoryAction.STOCK_OUT:
                target = previous - quantity
            else:
                target = quantity

            if target < 0:
                log.warning("stock.adjust_rejected", available=previous, target=target)
                raise OutOfStock(product_id, previous, previous - target, product.name)

            movement = self._apply(
                product,
                target - previous,
                action,
                actor=actor,
                reference=reference,
                notes=notes,
            )

        log.info("stock.adjusted", previous_stock=previous, new_stock=target)
        return movement

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        product: Product,
        delta: int,
        action: str,
        *,
        actor: Any,
        reference: str,
        notes: str,
    ) -> StockMovement:
        previous = product.stock_quantity
        new_stock = previous + delta
        self._repo.update_stock(product, new_stock)
        self._repo.add_inventory_log(
            product=product,
            action=action,
            quantity=delta,
            previous_stock=previous,
            new_stock=new_stock,
            reference=reference,
            notes=notes,
            performed_by=actor if getattr(actor, "pk", None) else None,
        )

        self._emitter.emit(
            StockChanged(
                aggregate_id=product.id,
                product_name=product.name,
                previous_stock=previous,
                new_stock=new_stock,
                is_available=product.is_available,
                action=action,
                reference=reference,
            )
        )
        if new_stock <= product.low_stock_threshold < previous:
            self._emitter.emit(
                LowStockReached(
                    aggregate_id=product.id,
                    product_name=product.name,
                    stock_quantity=new_stock,
                    low_stock_threshold=product.low_stock_threshold,
                )
            )
        return StockMovement(
            product=product,
            action=action,
            quantity=delta,
            previous_stock=previous,
            new_stock=new_stock,
        )

    def _lock(
        self,
        requested: Dict[UUID, int],
        log: Any,
        include_deleted: bool = False,
    ) -> Dict[UUID, Product]:
        with self._bounded_lock_wait(log):
            return self._repo.lock_many(
                sorted(requested), include_deleted=include_deleted
            )

    @contextmanager
    def _bounded_lock_wait(self, log: Any) -> Iterator[None]:
        """Cap the row-lock wait and turn a timeout into a retryable error.

        PostgreSQL honours ``SET LOCAL lock_timeout`` for the rest of the
        transaction; other backends rely on their own lock wait limit.
        """
        timeout_ms = settings.STOCK_LOCK_TIMEOUT_MS
        if timeout_ms and connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute(f"SET LOCAL lock_timeout = {int(timeout_ms)}")
        try:
            yield
        except OperationalError as exc:
            log.warning("stock.lock_timeout", error=str(exc))
            raise StockLockTimeout(
                "Timed out waiting for stock; please retry."
            ) from exc

    @staticmethod
    def _require_transaction(operation: str) -> None:
        if not connection.in_atomic_block:
            raise RuntimeError(
                f"StockReservationController.{operation}() must run inside "
                "transaction.atomic()."
            )

    @classmethod
    def _merge_lines(cls, lines: Iterable[Any]) -> Dict[UUID, int]:
        merged: Dict[UUID, int] = {}
        for line in lines:
            if line.quantity <= 0:
                raise ValueError(f"Quantity must be positive, got {line.quantity}.")
            key = cls._coerce_id(line.product_id)
            merged[key] = merged.get(key, 0) + line.quantity
        return dict(sorted(merged.items()))

    @staticmethod
    def _coerce_id(product_id: Any) -> UUID:
        if isinstance(product_id, UUID):
            return product_id
        try:
            return UUID(str(product_id))
        except ValueError:
            raise ProductNotFound(product_id) from None
