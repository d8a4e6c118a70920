from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from ..errors import ConflictError, NotFoundError, ProtectedResourceError, ValidationError
from ..models import Appointment, AvailabilitySlot
from .conflicts import first_overlapping
from .materializer import new_slot_id
from .repository_base import SchedulingRepository
from .template import DEFAULT_MIN_RANGE_MINUTES, TimeRange, WeeklyTemplate, check_time_range, template_from_slots
from .timezone import TimeZoneProjector


@dataclass
class SlotView:
    slot: AvailabilitySlot
    # available | hidden | pending | confirmed
    status: str
    is_past: bool
    appointment_id: Optional[str] = None


def _active_by_slot(repo: SchedulingRepository, slots: List[AvailabilitySlot]) -> Dict[str, Appointment]:
    return {a.slot_id: a for a in repo.list_active_appointments_by_slot_ids([s.id for s in slots])}


def list_provider_slots(
    repo: SchedulingRepository,
    projector: TimeZoneProjector,
    provider_id: str,
    from_instant: Optional[datetime] = None,
) -> List[SlotView]:
    slots = repo.list_slots(provider_id, from_instant)
    active = _active_by_slot(repo, slots)
    now = projector.now()

    out: List[SlotView] = []
    for s in slots:
        appt = active.get(s.id)
        if appt is not None:
            status = appt.status.value
        else:
            status = "hidden" if s.hidden else "available"
        out.append(SlotView(
            slot=s,
            status=status,
            is_past=s.start < now,
            appointment_id=appt.id if appt is not None else None,
        ))
    return out


def list_open_slots(
    repo: SchedulingRepository,
    projector: TimeZoneProjector,
    provider_id: Optional[str] = None,
) -> List[AvailabilitySlot]:
    """Bookable slots: future, not hidden, no active appointment."""
    slots = repo.list_visible_slots(projector.now(), provider_id)
    active = _active_by_slot(repo, slots)
    return [s for s in slots if s.id not in active]


def _owned_slot(repo: SchedulingRepository, provider_id: str, slot_id: str) -> AvailabilitySlot:
    slot = repo.get_slot(slot_id, for_update=True)
    # another provider's slot looks the same as a missing one
    if not slot or slot.provider_id != provider_id:
        raise NotFoundError(f"Slot {slot_id} not found")
    return slot


def _ensure_unprotected(repo: SchedulingRepository, slot: AvailabilitySlot) -> None:
    active = repo.list_active_appointments_by_slot_ids([slot.id])
    if active:
        raise ProtectedResourceError([slot.id], active[0].status.value)


def delete_slot(repo: SchedulingRepository, projector: TimeZoneProjector, provider_id: str, slot_id: str) -> None:
    try:
        slot = _owned_slot(repo, provider_id, slot_id)
        if slot.start < projector.now():
            raise ValidationError("Cannot delete past time slots.")
        _ensure_unprotected(repo, slot)
        repo.delete_slots([slot.id])
        repo.commit()
    except Exception:
        repo.rollback()
        raise


def release_slot(repo: SchedulingRepository, provider_id: str, slot_id: str) -> AvailabilitySlot:
    """Put a hidden slot back on offer, e.g. after its appointment was canceled."""
    try:
        slot = _owned_slot(repo, provider_id, slot_id)
        _ensure_unprotected(repo, slot)
        repo.set_slot_hidden(slot, False)
        repo.commit()
    except Exception:
        repo.rollback()
        raise
    return slot


def add_slot(
    repo: SchedulingRepository,
    projector: TimeZoneProjector,
    provider_id: str,
    local_date: date,
    rng: TimeRange,
    min_minutes: int = DEFAULT_MIN_RANGE_MINUTES,
) -> AvailabilitySlot:
    """One-off slot outside the weekly pattern."""
    problem = check_time_range(rng, min_minutes)
    if problem:
        raise ValidationError(problem, {rng.id: problem})
    if local_date <= projector.today():
        raise ValidationError("Slots can only be added from tomorrow on")

    start = projector.to_instant(local_date, rng.start)
    end = start + rng.duration
    try:
        existing = repo.list_slots(provider_id)
        clash = first_overlapping(start, end, existing)
        if clash is not None:
            raise ConflictError(f"Overlaps existing slot {clash.id}")
        slot = AvailabilitySlot(
            id=new_slot_id(),
            provider_id=provider_id,
            start=start,
            end=end,
            recurrence_group_id=None,
            hidden=False,
        )
        repo.insert_slots([slot])
        repo.commit()
    except Exception:
        repo.rollback()
        raise
    return slot


def load_template(repo: SchedulingRepository, projector: TimeZoneProjector, provider_id: str) -> WeeklyTemplate:
    """The weekly pattern behind the provider's upcoming recurring slots."""
    return template_from_slots(repo.list_slots(provider_id, projector.now()), projector)
