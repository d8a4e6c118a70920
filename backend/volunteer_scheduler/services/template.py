from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..errors import ValidationError
from ..models import AvailabilitySlot
from .timezone import TimeZoneProjector
from .wall_clock import format_hhmm, parse_hhmm

# date.weekday() numbering
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

DEFAULT_MIN_RANGE_MINUTES = 60


@dataclass(frozen=True)
class TimeRange:
    id: str
    start: time
    end: time

    @property
    def duration(self) -> timedelta:
        return _minutes(self.end) - _minutes(self.start)

    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


@dataclass(frozen=True)
class DayTemplate:
    day_of_week: int
    time_ranges: Tuple[TimeRange, ...] = ()
    enabled: bool = True


@dataclass(frozen=True)
class WeeklyTemplate:
    days: Tuple[DayTemplate, ...] = field(default_factory=tuple)

    def enabled_ranges(self) -> Iterator[Tuple[int, TimeRange]]:
        for day in sorted(self.days, key=lambda d: d.day_of_week):
            if not day.enabled:
                continue
            for rng in day.time_ranges:
                yield day.day_of_week, rng


def _minutes(value: time) -> timedelta:
    return timedelta(hours=value.hour, minutes=value.minute)


def check_time_range(rng: TimeRange, min_minutes: int = DEFAULT_MIN_RANGE_MINUTES) -> Optional[str]:
    """Return why ``rng`` is unusable, or None."""
    if rng.end <= rng.start:
        return "End time must be after start time"
    if rng.duration < timedelta(minutes=min_minutes):
        return f"Time range must be at least {min_minutes} minutes"
    return None


def build_template(days: Iterable[Mapping[str, Any]], min_minutes: int = DEFAULT_MIN_RANGE_MINUTES) -> WeeklyTemplate:
    """
    Build a WeeklyTemplate from plain mappings:
    ``{"day_of_week": 1, "enabled": True, "time_ranges": [{"id": "a", "start": "09:00", "end": "12:00"}]}``

    Every problem is collected before raising so a caller can show all of them at once.
    Overlaps are not checked here (see conflicts.detect_template_conflicts).
    """
    errors: Dict[str, str] = {}
    seen_days: set[int] = set()
    seen_ids: set[str] = set()
    out: List[DayTemplate] = []

    for raw_day in days:
        dow = raw_day.get("day_of_week")
        if not isinstance(dow, int) or not 0 <= dow <= 6:
            errors[f"day-{dow}"] = "day_of_week must be between 0 (Monday) and 6 (Sunday)"
            continue
        if dow in seen_days:
            errors[f"day-{dow}"] = f"{DAY_NAMES[dow]} appears more than once"
            continue
        seen_days.add(dow)

        enabled = bool(raw_day.get("enabled", True))
        ranges: List[TimeRange] = []
        for index, raw in enumerate(raw_day.get("time_ranges") or []):
            range_id = str(raw.get("id") or f"{dow}-{index}")
            if range_id in seen_ids:
                errors[range_id] = "Duplicate time range id"
                continue
            seen_ids.add(range_id)

            try:
                rng = TimeRange(id=range_id, start=parse_hhmm(raw.get("start")), end=parse_hhmm(raw.get("end")))
            except ValidationError as exc:
                errors[range_id] = exc.message
                continue

            # disabled days keep their ranges for the editor but are not checked
            problem = check_time_range(rng, min_minutes) if enabled else None
            if problem:
                errors[range_id] = problem
                continue
            ranges.append(rng)

        out.append(DayTemplate(day_of_week=dow, time_ranges=tuple(ranges), enabled=enabled))

    if errors:
        raise ValidationError("Template has invalid time ranges", errors)
    return WeeklyTemplate(days=tuple(sorted(out, key=lambda d: d.day_of_week)))


def template_from_slots(slots: Iterable[AvailabilitySlot], projector: TimeZoneProjector) -> WeeklyTemplate:
    """
    Rebuild the weekly pattern from materialized recurring slots.
    Ad hoc slots (no recurrence group) are not part of any pattern.
    """
    by_day: Dict[int, set[Tuple[time, time]]] = {}
    for slot in slots:
        if not slot.recurrence_group_id:
            continue
        start_date, start_time = projector.to_local(slot.start)
        # stored end is start + range length; rebuild the wall-clock end the same way
        local_end = datetime.combine(start_date, start_time) + (slot.end - slot.start)
        if local_end.date() != start_date:
            continue
        end_time = local_end.time()
        by_day.setdefault(start_date.weekday(), set()).add((start_time, end_time))

    days = []
    for dow in sorted(by_day):
        ranges = tuple(
            TimeRange(id=f"{dow}-{index}", start=start, end=end)
            for index, (start, end) in enumerate(sorted(by_day[dow]))
        )
        days.append(DayTemplate(day_of_week=dow, time_ranges=ranges))
    return WeeklyTemplate(days=tuple(days))


def template_to_dict(template: WeeklyTemplate) -> List[Dict[str, Any]]:
    return [
        {
            "day_of_week": day.day_of_week,
            "enabled": day.enabled,
            "time_ranges": [
                {"id": rng.id, "start": format_hhmm(rng.start), "end": format_hhmm(rng.end)}
                for rng in day.time_ranges
            ],
        }
        for day in template.days
    ]
