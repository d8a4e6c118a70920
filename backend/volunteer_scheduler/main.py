from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .config import settings
from .db import create_db_and_tables, get_session, engine, verify_connection
from .errors import SchedulingError, ValidationError, error_body, error_status
from .models import Appointment, AvailabilitySlot
from .schemas import (
    WeeklyTemplateIn, WeeklyTemplateOut, DayTemplateOut, TimeRangeOut,
    TemplateCheckResponse, RangeConflict,
    ReconcileResponse, SkippedOccurrence, UnresolvedOccurrence,
    SlotOut, SlotsResponse, ProviderSlotOut, ProviderSlotsResponse, CreateSlotRequest,
    ReserveRequest, ReasonRequest, AppointmentOut,
    HealthResponse,
)
from .services.audit import audit_subscriber
from .services.booking import BookingCoordinator
from .services.conflicts import detect_template_conflicts
from .services.events import EventBus
from .services.reconciler import RegenerationReconciler
from .services.repository_sql import SqlSchedulingRepository
from .services.slots import add_slot, delete_slot, list_open_slots, list_provider_slots, load_template, release_slot
from .services.template import TimeRange, build_template, template_to_dict
from .services.timezone import TimeZoneProjector
from .services.wall_clock import format_hhmm, parse_hhmm


app = FastAPI(title="Volunteer Availability & Booking API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

projector = TimeZoneProjector(settings.timezone)

# Notification collaborators subscribe here; the audit trail is always on.
event_bus = EventBus()
event_bus.subscribe_all(audit_subscriber(lambda: Session(engine, expire_on_commit=False)))


def get_projector() -> TimeZoneProjector:
    return projector


def get_event_bus() -> EventBus:
    return event_bus


def get_repo(session: Session = Depends(get_session)) -> SqlSchedulingRepository:
    return SqlSchedulingRepository(session)


def get_coordinator(
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
    bus: EventBus = Depends(get_event_bus),
) -> BookingCoordinator:
    return BookingCoordinator(repo, tz, bus, visit_minutes=settings.visit_minutes)


def get_reconciler(
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
    bus: EventBus = Depends(get_event_bus),
) -> RegenerationReconciler:
    return RegenerationReconciler(repo, tz, bus, horizon_weeks=settings.horizon_weeks)


@app.on_event("startup")
def on_startup():
    verify_connection()
    create_db_and_tables()


@app.exception_handler(SchedulingError)
def scheduling_error_handler(request: Request, exc: SchedulingError):
    return JSONResponse(status_code=error_status(exc), content=error_body(exc))


def _slot_out(s: AvailabilitySlot) -> SlotOut:
    return SlotOut(
        id=s.id,
        provider_id=s.provider_id,
        start=s.start,
        end=s.end,
        recurrence_group_id=s.recurrence_group_id,
    )


def _appointment_out(a: Appointment) -> AppointmentOut:
    return AppointmentOut(
        id=a.id,
        slot_id=a.slot_id,
        provider_id=a.provider_id,
        requester_id=a.requester_id,
        start=a.start,
        end=a.end,
        status=a.status.value,
        cancellation_reason=a.cancellation_reason,
    )


@app.get("/api/health", response_model=HealthResponse)
def health():
    verify_connection()
    return HealthResponse(status="ok", timezone=settings.timezone)


# ---------- PROVIDERS: weekly template ----------

@app.post("/api/templates/validate", response_model=TemplateCheckResponse)
def validate_template(req: WeeklyTemplateIn):
    try:
        template = build_template([d.model_dump() for d in req.days], settings.min_range_minutes)
    except ValidationError as e:
        return TemplateCheckResponse(valid=False, errors=e.errors)

    conflicts = [
        RangeConflict(day_of_week=day, range_id=range_id, reason=reason.value)
        for day, ranges in sorted(detect_template_conflicts(template).items())
        for range_id, reason in sorted(ranges.items())
    ]
    return TemplateCheckResponse(valid=not conflicts, conflicts=conflicts)


@app.get("/api/providers/{provider_id}/template", response_model=WeeklyTemplateOut)
def get_template(
    provider_id: str,
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
):
    template = load_template(repo, tz, provider_id)
    days = [
        DayTemplateOut(
            day_of_week=d["day_of_week"],
            enabled=d["enabled"],
            time_ranges=[TimeRangeOut(**r) for r in d["time_ranges"]],
        )
        for d in template_to_dict(template)
    ]
    return WeeklyTemplateOut(provider_id=provider_id, timezone=tz.zone_id, days=days)


@app.put("/api/providers/{provider_id}/template", response_model=ReconcileResponse)
def save_template(
    provider_id: str,
    req: WeeklyTemplateIn,
    dry_run: bool = False,
    reconciler: RegenerationReconciler = Depends(get_reconciler),
):
    template = build_template([d.model_dump() for d in req.days], settings.min_range_minutes)
    if dry_run:
        result = reconciler.preview(provider_id, template)
    else:
        result = reconciler.reconcile(provider_id, template)

    return ReconcileResponse(
        provider_id=provider_id,
        dry_run=dry_run,
        deleted=result.deleted,
        created=result.created,
        skipped=result.skipped,
        protected_preserved=result.protected_preserved,
        skipped_occurrences=[
            SkippedOccurrence(
                day_of_week=o.day_of_week,
                local_date=o.local_date,
                start=format_hhmm(o.local_start),
                end=format_hhmm(o.local_end),
            )
            for o in result.skipped_occurrences
        ],
        unresolved=result.unresolved,
        unresolved_occurrences=[
            UnresolvedOccurrence(
                day_of_week=o.day_of_week,
                local_date=o.local_date,
                start=format_hhmm(o.local_start),
                end=format_hhmm(o.local_end),
                reason=o.reason,
            )
            for o in result.unresolved_occurrences
        ],
    )


# ---------- PROVIDERS: specific dates ----------

@app.get("/api/providers/{provider_id}/slots", response_model=ProviderSlotsResponse)
def provider_slots(
    provider_id: str,
    from_time: datetime | None = None,
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
):
    if from_time is not None and from_time.tzinfo is None:
        from_time = from_time.replace(tzinfo=timezone.utc)
    views = list_provider_slots(repo, tz, provider_id, from_time)
    return ProviderSlotsResponse(slots=[
        ProviderSlotOut(
            **_slot_out(v.slot).model_dump(),
            hidden=v.slot.hidden,
            status=v.status,
            is_past=v.is_past,
            appointment_id=v.appointment_id,
        )
        for v in views
    ])


@app.post("/api/providers/{provider_id}/slots", response_model=SlotOut, status_code=201)
def create_slot(
    provider_id: str,
    req: CreateSlotRequest,
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
):
    rng = TimeRange(id="slot", start=parse_hhmm(req.start), end=parse_hhmm(req.end))
    slot = add_slot(repo, tz, provider_id, req.local_date, rng, settings.min_range_minutes)
    return _slot_out(slot)


@app.delete("/api/providers/{provider_id}/slots/{slot_id}", status_code=204)
def remove_slot(
    provider_id: str,
    slot_id: str,
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
):
    delete_slot(repo, tz, provider_id, slot_id)
    return Response(status_code=204)


@app.post("/api/providers/{provider_id}/slots/{slot_id}/release", response_model=SlotOut)
def release(
    provider_id: str,
    slot_id: str,
    repo: SqlSchedulingRepository = Depends(get_repo),
):
    return _slot_out(release_slot(repo, provider_id, slot_id))


# ---------- REQUESTERS: open slots and appointments ----------

@app.get("/api/slots", response_model=SlotsResponse)
def open_slots(
    provider_id: str | None = None,
    repo: SqlSchedulingRepository = Depends(get_repo),
    tz: TimeZoneProjector = Depends(get_projector),
):
    return SlotsResponse(slots=[_slot_out(s) for s in list_open_slots(repo, tz, provider_id)])


@app.post("/api/appointments", response_model=AppointmentOut, status_code=201)
def reserve(req: ReserveRequest, coordinator: BookingCoordinator = Depends(get_coordinator)):
    appt = coordinator.reserve(req.slot_id, req.requester_id, req.requested_time)
    return _appointment_out(appt)


@app.get("/api/appointments/{appointment_id}", response_model=AppointmentOut)
def get_appointment(appointment_id: str, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return _appointment_out(coordinator.get(appointment_id))


@app.post("/api/appointments/{appointment_id}/confirm", response_model=AppointmentOut)
def confirm(appointment_id: str, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return _appointment_out(coordinator.confirm(appointment_id))


@app.post("/api/appointments/{appointment_id}/decline", response_model=AppointmentOut)
def decline(
    appointment_id: str,
    req: ReasonRequest | None = None,
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return _appointment_out(coordinator.decline(appointment_id, req.reason if req else None))


@app.post("/api/appointments/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel(
    appointment_id: str,
    req: ReasonRequest | None = None,
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return _appointment_out(coordinator.cancel(appointment_id, req.reason if req else None))
