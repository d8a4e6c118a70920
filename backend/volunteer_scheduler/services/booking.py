from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Appointment, AppointmentStatus, AvailabilitySlot
from .events import (
    AppointmentCanceled,
    AppointmentConfirmed,
    AppointmentReserved,
    DomainEvent,
    EventBus,
)
from .repository_base import SchedulingRepository
from .timezone import TimeZoneProjector
from .wall_clock import parse_wall_clock

DEFAULT_VISIT_MINUTES = 60

# action -> statuses it may start from
_ALLOWED_FROM = {
    "confirm": (AppointmentStatus.pending,),
    "decline": (AppointmentStatus.pending,),
    "cancel": (AppointmentStatus.pending, AppointmentStatus.confirmed),
}


class BookingCoordinator:
    """
    Slot -> appointment state machine.

        available --reserve--> pending --confirm--> confirmed
                                  |                     |
                               decline               cancel
                                  v                     v
                               canceled <---------------+

    "available" is not stored: it is a slot with no pending/confirmed appointment.
    """

    def __init__(
        self,
        repo: SchedulingRepository,
        projector: TimeZoneProjector,
        events: Optional[EventBus] = None,
        visit_minutes: int = DEFAULT_VISIT_MINUTES,
    ):
        self.repo = repo
        self.projector = projector
        self.events = events
        self.visit_minutes = visit_minutes

    def reserve(self, slot_id: str, requester_id: str, requested_time: Optional[str] = None) -> Appointment:
        """
        Book ``slot_id`` for ``requester_id`` and hide the slot, atomically.
        The loser of a concurrent race gets ConflictError and nothing is written.
        """
        try:
            slot = self.repo.get_slot(slot_id, for_update=True)
            if not slot:
                raise NotFoundError(f"Slot {slot_id} not found")
            if slot.hidden:
                raise ConflictError("Slot is not available")
            if slot.start <= self.projector.now():
                raise ValidationError("Cannot book past/started slots")
            if self.repo.list_active_appointments_by_slot_ids([slot.id]):
                raise ConflictError("Slot already booked")

            start, end = self._booking_window(slot, requested_time)
            appt = Appointment(
                id="appt_" + uuid.uuid4().hex[:12],
                slot_id=slot.id,
                provider_id=slot.provider_id,
                requester_id=requester_id,
                start=start,
                end=end,
                status=AppointmentStatus.pending,
            )
            self.repo.insert_appointment(appt)
            self.repo.set_slot_hidden(slot, True)
            event = AppointmentReserved(appointment_id=appt.id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        self._publish(event)
        return appt

    def confirm(self, appointment_id: str) -> Appointment:
        return self._transition(appointment_id, "confirm", AppointmentStatus.confirmed)

    def decline(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        return self._transition(appointment_id, "decline", AppointmentStatus.canceled, reason)

    def cancel(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        # The slot stays hidden; putting it back on offer is release_slot().
        return self._transition(appointment_id, "cancel", AppointmentStatus.canceled, reason)

    def get(self, appointment_id: str) -> Appointment:
        appt = self.repo.get_appointment(appointment_id)
        if not appt:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appt

    def _transition(
        self,
        appointment_id: str,
        action: str,
        target: AppointmentStatus,
        reason: Optional[str] = None,
    ) -> Appointment:
        try:
            appt = self.repo.get_appointment(appointment_id, for_update=True)
            if not appt:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            if appt.status not in _ALLOWED_FROM[action]:
                raise InvalidTransitionError(appointment_id, appt.status.value, action)

            appt = self.repo.update_appointment_status(appointment_id, target, reason)
            event: DomainEvent
            if target == AppointmentStatus.confirmed:
                event = AppointmentConfirmed(appointment_id=appointment_id)
            else:
                event = AppointmentCanceled(appointment_id=appointment_id, reason=reason)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        self._publish(event)
        return appt

    def _booking_window(self, slot: AvailabilitySlot, requested_time: Optional[str]):
        if not requested_time:
            return slot.start, slot.end

        local_date, _ = self.projector.to_local(slot.start)
        start = self.projector.to_instant(local_date, parse_wall_clock(requested_time))
        end = start + timedelta(minutes=self.visit_minutes)
        if start < slot.start or end > slot.end:
            raise ValidationError("Time is outside the available window.")
        return start, end

    def _publish(self, event: DomainEvent) -> None:
        if self.events:
            self.events.publish(event)
