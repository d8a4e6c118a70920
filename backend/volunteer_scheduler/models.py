from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, text
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field, Index


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Stores instants as naive UTC and hands them back timezone-aware.
    SQLite keeps no offset, so string comparisons only work if every row is UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime cannot be stored as an instant")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    canceled = "canceled"


ACTIVE_STATUSES = (AppointmentStatus.pending, AppointmentStatus.confirmed)


class AvailabilitySlot(SQLModel, table=True):
    id: str = Field(primary_key=True)
    provider_id: str = Field(index=True)
    start: datetime = Field(sa_type=UTCDateTime)
    end: datetime = Field(sa_type=UTCDateTime)
    recurrence_group_id: Optional[str] = Field(default=None, index=True)
    hidden: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


Index("idx_slot_provider_start", AvailabilitySlot.provider_id, AvailabilitySlot.start)


class Appointment(SQLModel, table=True):
    id: str = Field(primary_key=True)
    # No foreign key: the appointment outlives a slot deleted after cancellation
    slot_id: str = Field(index=True)
    provider_id: str = Field(index=True)
    requester_id: str = Field(index=True)
    start: datetime = Field(sa_type=UTCDateTime)
    end: datetime = Field(sa_type=UTCDateTime)

    status: AppointmentStatus = AppointmentStatus.pending
    cancellation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# One active appointment per slot, enforced by the database
_ACTIVE_CLAUSE = text("status IN ('pending', 'confirmed')")
Index(
    "uq_appt_active_slot",
    Appointment.slot_id,
    unique=True,
    sqlite_where=_ACTIVE_CLAUSE,
    postgresql_where=_ACTIVE_CLAUSE,
)


class DomainEventRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    event_type: str = Field(index=True)
    provider_id: Optional[str] = None
    appointment_id: Optional[str] = None
    payload_json: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
