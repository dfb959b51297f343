"""Post-commit notification delivery.

Services never publish events directly: they hand them to a
``NotificationEmitter`` which defers delivery until the surrounding
database transaction commits.  A rolled-back transaction therefore emits
nothing, and a failing subscriber can never undo committed state.
"""

from __future__ import annotations

from functools import partial
from typing import Iterable, Optional

import structlog
from django.db import DEFAULT_DB_ALIAS, transaction

from shared.domain.bus import IEventPublisher
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


class NotificationEmitter:
    def __init__(
        self,
        bus: Optional[IEventPublisher] = None,
        using: str = DEFAULT_DB_ALIAS,
    ) -> None:
        self._bus = bus or event_bus
        self._using = using

    def emit(self, event: DomainEvent) -> None:
        """Queue *event* for delivery once the current transaction commits.

        Outside of an atomic block Django runs the callback immediately.
        """
        transaction.on_commit(partial(self._deliver, event), using=self._using)

    def emit_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.emit(event)

    def _deliver(self, event: DomainEvent) -> None:
        log = logger.bind(
            event_name=event.event_name,
            event_id=str(event.event_id),
            aggregate_id=str(event.aggregate_id),
        )
        try:
            self._bus.publish(event)
        except Exception:
            log.exception("notification.delivery_failed")
            return
        log.debug("notification.delivered")


notification_emitter = NotificationEmitter()
