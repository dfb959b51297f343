"""Ports between event producers and the handlers that react to them.

Services never publish directly: they hand events to the notification
emitter, which publishes on commit through an ``IEventBus``.
"""

from __future__ import annotations

from typing import Generic, List, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    def handle(self, event: E) -> None: ...


class IEventPublisher(Protocol):
    """Anything the emitter can deliver to (the bus, a test recorder)."""

    def publish(self, event: DomainEvent) -> None: ...


class IEventBus(IEventPublisher, Protocol):
    """Routes an event to the handlers subscribed to its exact class."""

    def subscribe(
        self, event_class: Type[DomainEvent], handler: IEventHandler
    ) -> None: ...

    def unsubscribe(
        self, event_class: Type[DomainEvent], handler: IEventHandler
    ) -> None: ...

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]: ...
