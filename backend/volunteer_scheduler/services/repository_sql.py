from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import ConflictError, NotFoundError
from ..models import ACTIVE_STATUSES, Appointment, AppointmentStatus, AvailabilitySlot, utcnow
from .repository_base import SchedulingRepository


class SqlSchedulingRepository(SchedulingRepository):
    """
    SchedulingRepository over a SQLModel session.
    Writes are flushed, never committed, until the caller calls commit().
    """

    def __init__(self, session: Session):
        self.session = session

    # -- slots -------------------------------------------------------------

    def list_slots(
        self, provider_id: str, from_instant: Optional[datetime] = None, for_update: bool = False
    ) -> List[AvailabilitySlot]:
        stmt = select(AvailabilitySlot).where(AvailabilitySlot.provider_id == provider_id)
        if from_instant is not None:
            stmt = stmt.where(AvailabilitySlot.start >= from_instant)
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.exec(stmt.order_by(AvailabilitySlot.start)).all())

    def list_visible_slots(self, from_instant: datetime, provider_id: Optional[str] = None) -> List[AvailabilitySlot]:
        stmt = select(AvailabilitySlot).where(
            AvailabilitySlot.hidden == False,  # noqa: E712
            AvailabilitySlot.start >= from_instant,
        )
        if provider_id:
            stmt = stmt.where(AvailabilitySlot.provider_id == provider_id)
        return list(self.session.exec(stmt.order_by(AvailabilitySlot.start, AvailabilitySlot.provider_id)).all())

    def get_slot(self, slot_id: str, for_update: bool = False) -> Optional[AvailabilitySlot]:
        stmt = select(AvailabilitySlot).where(AvailabilitySlot.id == slot_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.exec(stmt).first()

    def insert_slots(self, slots: Sequence[AvailabilitySlot]) -> None:
        self.session.add_all(list(slots))
        self.session.flush()

    def delete_slots(self, slot_ids: Sequence[str]) -> int:
        if not slot_ids:
            return 0
        rows = self.session.exec(
            select(AvailabilitySlot).where(AvailabilitySlot.id.in_(list(slot_ids)))
        ).all()
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)

    def set_slot_hidden(self, slot: AvailabilitySlot, hidden: bool) -> None:
        slot.hidden = hidden
        self.session.add(slot)
        self.session.flush()

    # -- appointments --------------------------------------------------------

    def list_active_appointments_by_slot_ids(self, slot_ids: Sequence[str]) -> List[Appointment]:
        if not slot_ids:
            return []
        stmt = select(Appointment).where(
            Appointment.slot_id.in_(list(slot_ids)),
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        return list(self.session.exec(stmt).all())

    def get_appointment(self, appointment_id: str, for_update: bool = False) -> Optional[Appointment]:
        stmt = select(Appointment).where(Appointment.id == appointment_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.exec(stmt).first()

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # uq_appt_active_slot: somebody else holds this slot. The failed
            # flush leaves the transaction for the caller to roll back.
            raise ConflictError("Slot already booked") from exc
        return appointment

    def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, reason: Optional[str] = None
    ) -> Appointment:
        appt = self.get_appointment(appointment_id, for_update=True)
        if not appt:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        appt.status = status
        if reason is not None:
            appt.cancellation_reason = reason
        appt.updated_at = utcnow()
        self.session.add(appt)
        self.session.flush()
        return appt

    # -- transaction ---------------------------------------------------------

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
