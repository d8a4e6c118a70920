from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from ..models import Appointment, AppointmentStatus, AvailabilitySlot


class SlotRepository(Protocol):
    def list_slots(
        self, provider_id: str, from_instant: Optional[datetime] = None, for_update: bool = False
    ) -> List[AvailabilitySlot]:
        """Ordered by start. ``for_update`` locks the rows until the transaction ends."""
        ...

    def list_visible_slots(self, from_instant: datetime, provider_id: Optional[str] = None) -> List[AvailabilitySlot]:
        ...

    def get_slot(self, slot_id: str, for_update: bool = False) -> Optional[AvailabilitySlot]:
        ...

    def insert_slots(self, slots: Sequence[AvailabilitySlot]) -> None:
        ...

    def delete_slots(self, slot_ids: Sequence[str]) -> int:
        ...

    def set_slot_hidden(self, slot: AvailabilitySlot, hidden: bool) -> None:
        ...


class AppointmentRepository(Protocol):
    def list_active_appointments_by_slot_ids(self, slot_ids: Sequence[str]) -> List[Appointment]:
        ...

    def get_appointment(self, appointment_id: str, for_update: bool = False) -> Optional[Appointment]:
        ...

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Raises ConflictError if the slot already has an active appointment."""
        ...

    def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, reason: Optional[str] = None
    ) -> Appointment:
        ...


class SchedulingRepository(SlotRepository, AppointmentRepository, Protocol):
    """Both repositories over one transaction; nothing is durable until commit()."""

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...
