"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class EventDispatchError(Exception):
    """One or more handlers failed while processing an event."""

    def __init__(self, event: DomainEvent, errors: List[Exception]) -> None:
        self.event = event
        self.errors = errors
        summary = "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        super().__init__(f"{event.event_name} ({event.event_id}): {summary}")


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Every subscribed handler runs even when an earlier one fails; the
    failures are raised together afterwards so the caller (the outbox
    dispatcher) can record them.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        errors: List[Exception] = []
        for handler in self._handlers.get(type(event), []):
            try:
                handler.handle(event)
            except Exception as exc:
                logger.warning(
                    "event_bus.handler_failed",
                    event_name=event.event_name,
                    handler=type(handler).__name__,
                    error=str(exc),
                )
                errors.append(exc)
        if errors:
            raise EventDispatchError(event, errors)


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
