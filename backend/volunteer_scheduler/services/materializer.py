from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from ..errors import TimeZoneResolutionError
from ..models import AvailabilitySlot
from .template import DAY_NAMES, TimeRange, WeeklyTemplate
from .timezone import TimeZoneProjector
from .wall_clock import format_hhmm

_RECURRENCE_NAMESPACE = uuid.UUID("6f1c3a52-9d0e-4b7f-8a31-2c5e0d9b4f17")


def new_slot_id() -> str:
    return "slot_" + uuid.uuid4().hex[:12]


def recurrence_group_id(provider_id: str, day_of_week: int, rng: TimeRange) -> str:
    """Stable id for one weekly (day, range) pattern of one provider."""
    key = f"{provider_id}:{day_of_week}:{format_hhmm(rng.start)}-{format_hhmm(rng.end)}"
    return str(uuid.uuid5(_RECURRENCE_NAMESPACE, key))


@dataclass(frozen=True)
class SlotOccurrence:
    provider_id: str
    day_of_week: int
    week_offset: int
    local_date: date
    local_start: time
    local_end: time
    start: datetime
    end: datetime
    recurrence_group_id: Optional[str]

    def to_slot(self) -> AvailabilitySlot:
        return AvailabilitySlot(
            id=new_slot_id(),
            provider_id=self.provider_id,
            start=self.start,
            end=self.end,
            recurrence_group_id=self.recurrence_group_id,
            hidden=False,
        )

    def describe(self) -> str:
        return _describe(self.day_of_week, self.local_date, self.local_start, self.local_end)


@dataclass(frozen=True)
class UnresolvedOccurrence:
    """An occurrence whose start falls in a DST gap or fold on its date."""

    day_of_week: int
    local_date: date
    local_start: time
    local_end: time
    reason: str

    def describe(self) -> str:
        return _describe(self.day_of_week, self.local_date, self.local_start, self.local_end)


def _describe(day_of_week: int, local_date: date, start: time, end: time) -> str:
    return f"{DAY_NAMES[day_of_week]} {local_date.isoformat()} {format_hhmm(start)}-{format_hhmm(end)}"


def first_eligible_date(earliest_date: date) -> date:
    # Nothing is published for the current day.
    return earliest_date + timedelta(days=1)


def week_anchor(day: date) -> date:
    """Monday on or before ``day``."""
    return day - timedelta(days=day.weekday())


def materialize(
    template: WeeklyTemplate,
    horizon_weeks: int,
    earliest_date: date,
    projector: TimeZoneProjector,
    provider_id: str,
    unresolved: Optional[List[UnresolvedOccurrence]] = None,
) -> List[SlotOccurrence]:
    """
    Project a weekly template onto concrete dates.
    - First slot is on the day after ``earliest_date`` at the soonest
    - ``horizon_weeks`` occurrences per enabled (day, range)
    - Dates advance in local calendar days; each start is resolved through the
      zone on its own date, and the end is start + range length

    Pure: nothing is read or written. An occurrence whose start falls in a DST
    gap or fold raises TimeZoneResolutionError, unless an ``unresolved`` list is
    given: then it is appended there and the other occurrences are kept.
    """
    if horizon_weeks <= 0:
        return []

    eligible = first_eligible_date(earliest_date)
    anchor = week_anchor(eligible)

    occurrences: List[SlotOccurrence] = []
    for dow, rng in template.enabled_ranges():
        first = anchor + timedelta(days=dow)
        if first < eligible:
            first += timedelta(days=7)

        group_id = recurrence_group_id(provider_id, dow, rng)
        for week in range(horizon_weeks):
            local_date = first + timedelta(weeks=week)
            try:
                start = projector.to_instant(local_date, rng.start)
            except TimeZoneResolutionError as exc:
                if unresolved is not None:
                    unresolved.append(UnresolvedOccurrence(
                        day_of_week=dow,
                        local_date=local_date,
                        local_start=rng.start,
                        local_end=rng.end,
                        reason=exc.message,
                    ))
                    continue
                raise type(exc)(
                    f"{DAY_NAMES[dow]} {rng.label()} on {local_date.isoformat()}: {exc.message}",
                    local_date=local_date,
                ) from exc
            occurrences.append(SlotOccurrence(
                provider_id=provider_id,
                day_of_week=dow,
                week_offset=week,
                local_date=local_date,
                local_start=rng.start,
                local_end=rng.end,
                start=start,
                end=start + rng.duration,
                recurrence_group_id=group_id,
            ))

    occurrences.sort(key=lambda o: (o.start, o.end))
    return occurrences
