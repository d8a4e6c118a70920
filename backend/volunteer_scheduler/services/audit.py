from __future__ import annotations

import json
import uuid
from typing import Callable

from sqlmodel import Session

from ..models import DomainEventRecord
from .events import DomainEvent


def log_event(session: Session, event: DomainEvent) -> DomainEventRecord:
    """
    Append-only audit log of committed domain events.
    Stored as JSON string for flexibility.
    """
    payload = event.payload()
    rec = DomainEventRecord(
        id="evt_" + uuid.uuid4().hex[:12],
        event_type=event.name,
        provider_id=payload.get("provider_id"),
        appointment_id=payload.get("appointment_id"),
        payload_json=json.dumps(payload, ensure_ascii=False),
    )
    session.add(rec)
    session.commit()
    return rec


def audit_subscriber(session_factory: Callable[[], Session]) -> Callable[[DomainEvent], None]:
    """EventBus handler writing each event in its own session, outside the core transaction."""

    def _handle(event: DomainEvent) -> None:
        with session_factory() as session:
            log_event(session, event)

    return _handle
