import re
from datetime import time

from ..errors import ValidationError

# "11am", "2:30 PM", "2:30 p.m.", "12 a.m."
_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m\.?\s*$", re.I)

# "09:00", "9:00", "17:45"
_TWENTY_FOUR_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_wall_clock(text: str) -> time:
    """Parse requester input in the ``h[:mm] (am|pm)`` grammar."""
    match = _TWELVE_HOUR.match(text or "")
    if not match:
        raise ValidationError(f'Invalid time "{text}". Use e.g. "11:30am"')

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not 1 <= hour <= 12 or minute > 59:
        raise ValidationError(f'Invalid time "{text}". Use e.g. "11:30am"')

    period = match.group(3).lower()
    if period == "p" and hour != 12:
        hour += 12
    if period == "a" and hour == 12:
        hour = 0
    return time(hour, minute)


def parse_hhmm(text: str) -> time:
    match = _TWENTY_FOUR_HOUR.match(text or "")
    if not match:
        raise ValidationError(f'Invalid time "{text}". Use HH:MM')
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f'Invalid time "{text}". Use HH:MM')
    return time(hour, minute)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
