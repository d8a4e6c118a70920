from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Callable, DefaultDict, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    def payload(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class SlotsRegenerated(DomainEvent):
    provider_id: str
    deleted: int
    created: int
    skipped: int


@dataclass(frozen=True)
class AppointmentReserved(DomainEvent):
    appointment_id: str


@dataclass(frozen=True)
class AppointmentConfirmed(DomainEvent):
    appointment_id: str


@dataclass(frozen=True)
class AppointmentCanceled(DomainEvent):
    appointment_id: str
    reason: Optional[str] = None


Handler = Callable[[DomainEvent], None]


class EventBus:
    """
    In-process publish/subscribe for domain events.

    Publish only after the transaction that produced the event has committed.
    A failing subscriber is logged and skipped; it never reaches the publisher.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self.subscribe(DomainEvent, handler)

    def publish(self, event: DomainEvent) -> None:
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler %r failed for %s", handler, event.name)
