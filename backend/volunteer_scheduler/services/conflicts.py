"""
Overlap detection for the time ranges of a weekly template.

Two ranges conflict when ``start1 < end2 and start2 < end1``. Touching ranges
(09:00-10:00 and 10:00-11:00) do not. Identical ranges are reported as
duplicates rather than overlaps so the editor can say "remove one of these".
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, Sequence

from ..errors import TemplateConflictError
from .template import TimeRange, WeeklyTemplate


class ConflictReason(str, Enum):
    overlap = "overlap"
    duplicate = "duplicate"


def intervals_overlap(start1, end1, start2, end2) -> bool:
    return start1 < end2 and start2 < end1


def detect_conflicts(ranges: Sequence[TimeRange]) -> Dict[str, ConflictReason]:
    conflicts: Dict[str, ConflictReason] = {}
    for a, b in combinations(ranges, 2):
        if (a.start, a.end) == (b.start, b.end):
            conflicts[a.id] = conflicts[b.id] = ConflictReason.duplicate
        elif intervals_overlap(a.start, a.end, b.start, b.end):
            for range_id in (a.id, b.id):
                conflicts.setdefault(range_id, ConflictReason.overlap)
    return conflicts


def detect_template_conflicts(template: WeeklyTemplate) -> Dict[int, Dict[str, ConflictReason]]:
    found: Dict[int, Dict[str, ConflictReason]] = {}
    for day in template.days:
        if not day.enabled or len(day.time_ranges) < 2:
            continue
        day_conflicts = detect_conflicts(day.time_ranges)
        if day_conflicts:
            found[day.day_of_week] = day_conflicts
    return found


def ensure_no_conflicts(template: WeeklyTemplate) -> None:
    """Refuse the whole template if any day has a conflict."""
    found = detect_template_conflicts(template)
    if found:
        raise TemplateConflictError(
            {day: {rid: reason.value for rid, reason in ranges.items()} for day, ranges in found.items()}
        )


def first_overlapping(start: datetime, end: datetime, windows: Iterable) -> object | None:
    """First item of ``windows`` (anything with ``start``/``end``) overlapping [start, end)."""
    for window in windows:
        if intervals_overlap(start, end, window.start, window.end):
            return window
    return None
