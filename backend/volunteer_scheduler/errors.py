"""
Scheduling error taxonomy and its HTTP mapping.
Services raise these; routes never build HTTPExceptions for business rules themselves.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, Optional

# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class SchedulingError(Exception):
    """Base class. ``details`` is merged into the JSON error body."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def details(self) -> Dict[str, Any]:
        return {}


class ValidationError(SchedulingError):
    """Malformed or out-of-bounds input, rejected before anything is written."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        # range id (or field name) -> reason
        self.errors = dict(errors or {})

    @property
    def details(self) -> Dict[str, Any]:
        return {"errors": self.errors} if self.errors else {}


class ConflictError(SchedulingError):
    pass


class TemplateConflictError(ConflictError):
    def __init__(self, conflicts: Dict[int, Dict[str, str]]):
        super().__init__("Template has overlapping or duplicate time ranges")
        # day_of_week -> {range_id: reason}
        self.conflicts = conflicts

    @property
    def details(self) -> Dict[str, Any]:
        return {
            "conflicts": [
                {"day_of_week": day, "range_id": range_id, "reason": reason}
                for day, ranges in sorted(self.conflicts.items())
                for range_id, reason in sorted(ranges.items())
            ]
        }


class InvalidTransitionError(ConflictError):
    def __init__(self, appointment_id: str, current: str, action: str):
        super().__init__(f"Cannot {action} appointment {appointment_id} in status {current}")
        self.appointment_id = appointment_id
        self.current = current

    @property
    def details(self) -> Dict[str, Any]:
        return {"appointment_id": self.appointment_id, "status": self.current}


class ProtectedResourceError(SchedulingError):
    """A slot referenced by a pending or confirmed appointment was targeted."""

    def __init__(self, slot_ids: Iterable[str], appointment_status: Optional[str] = None):
        self.slot_ids = list(slot_ids)
        self.appointment_status = appointment_status
        label = f"a {appointment_status} appointment" if appointment_status else "an active appointment"
        super().__init__(f"Slot is referenced by {label}; cancel the appointment first")

    @property
    def details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"slot_ids": self.slot_ids}
        if self.appointment_status:
            out["appointment_status"] = self.appointment_status
        return out


class NotFoundError(SchedulingError):
    pass


class TimeZoneResolutionError(SchedulingError):
    def __init__(self, message: str, local_date: Optional[date] = None):
        super().__init__(message)
        self.local_date = local_date

    @property
    def details(self) -> Dict[str, Any]:
        return {"local_date": self.local_date.isoformat()} if self.local_date else {}


class AmbiguousLocalTimeError(TimeZoneResolutionError):
    pass


class NonexistentLocalTimeError(TimeZoneResolutionError):
    pass


# ---------------------------------------------------------------------------
# HTTP mapping: most specific class first. First match wins.
# ---------------------------------------------------------------------------

STATUS_UNPROCESSABLE = 422
STATUS_CONFLICT = 409
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500

ERROR_STATUS: list[tuple[type[SchedulingError], int]] = [
    (ValidationError, STATUS_UNPROCESSABLE),
    (TimeZoneResolutionError, STATUS_UNPROCESSABLE),
    (ConflictError, STATUS_CONFLICT),
    (ProtectedResourceError, STATUS_CONFLICT),
    (NotFoundError, STATUS_NOT_FOUND),
]


def error_status(exc: SchedulingError) -> int:
    for cls, status_code in ERROR_STATUS:
        if isinstance(exc, cls):
            return status_code
    return STATUS_INTERNAL_ERROR


def error_body(exc: SchedulingError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": exc.message, "error": type(exc).__name__}
    body.update(exc.details)
    return body
