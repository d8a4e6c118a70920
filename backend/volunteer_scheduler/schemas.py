from __future__ import annotations

from datetime import datetime, date
from typing import Optional, List, Literal
from pydantic import BaseModel, Field

AppointmentStatusLiteral = Literal["pending", "confirmed", "canceled"]
SlotStatus = Literal["available", "hidden", "pending", "confirmed"]
ConflictReasonLiteral = Literal["overlap", "duplicate"]

HHMM_PATTERN = r"^\d{1,2}:\d{2}$"


class TimeRangeIn(BaseModel):
    id: Optional[str] = Field(None, max_length=64)
    start: str = Field(..., pattern=HHMM_PATTERN, examples=["09:00"])
    end: str = Field(..., pattern=HHMM_PATTERN, examples=["12:00"])


class DayTemplateIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    enabled: bool = True
    time_ranges: List[TimeRangeIn] = []


class WeeklyTemplateIn(BaseModel):
    days: List[DayTemplateIn] = []


class TimeRangeOut(BaseModel):
    id: str
    start: str
    end: str


class DayTemplateOut(BaseModel):
    day_of_week: int
    enabled: bool
    time_ranges: List[TimeRangeOut]


class WeeklyTemplateOut(BaseModel):
    provider_id: str
    timezone: str
    days: List[DayTemplateOut]


class RangeConflict(BaseModel):
    day_of_week: int
    range_id: str
    reason: ConflictReasonLiteral


class TemplateCheckResponse(BaseModel):
    valid: bool
    conflicts: List[RangeConflict] = []
    errors: dict[str, str] = {}


class SkippedOccurrence(BaseModel):
    day_of_week: int
    local_date: date
    start: str
    end: str


class UnresolvedOccurrence(SkippedOccurrence):
    reason: str


class ReconcileResponse(BaseModel):
    provider_id: str
    dry_run: bool = False
    deleted: int
    created: int
    skipped: int
    protected_preserved: int
    skipped_occurrences: List[SkippedOccurrence] = []
    unresolved: int = 0
    unresolved_occurrences: List[UnresolvedOccurrence] = []


class SlotOut(BaseModel):
    id: str
    provider_id: str
    start: datetime
    end: datetime
    recurrence_group_id: Optional[str] = None


class ProviderSlotOut(SlotOut):
    hidden: bool
    status: SlotStatus
    is_past: bool
    appointment_id: Optional[str] = None


class SlotsResponse(BaseModel):
    slots: List[SlotOut]


class ProviderSlotsResponse(BaseModel):
    slots: List[ProviderSlotOut]


class CreateSlotRequest(BaseModel):
    local_date: date
    start: str = Field(..., pattern=HHMM_PATTERN)
    end: str = Field(..., pattern=HHMM_PATTERN)


class ReserveRequest(BaseModel):
    slot_id: str = Field(..., min_length=1, max_length=64)
    requester_id: str = Field(..., min_length=1, max_length=120)
    requested_time: Optional[str] = Field(None, max_length=20, examples=["11:30am"])


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentOut(BaseModel):
    id: str
    slot_id: str
    provider_id: str
    requester_id: str
    start: datetime
    end: datetime
    status: AppointmentStatusLiteral
    cancellation_reason: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timezone: str
