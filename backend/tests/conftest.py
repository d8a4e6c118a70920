import os
import tempfile
from pathlib import Path

# Point the app at a throwaway database before anything imports the settings.
_DB_DIR = Path(tempfile.mkdtemp(prefix="volunteer-scheduler-tests-"))
os.environ["SCHEDULER_DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'app.db'}"
os.environ["SCHEDULER_TIMEZONE"] = "America/New_York"

import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlmodel import SQLModel, Session

from volunteer_scheduler.db import build_engine
from volunteer_scheduler.models import Appointment, AppointmentStatus, AvailabilitySlot
from volunteer_scheduler.services.events import EventBus
from volunteer_scheduler.services.repository_sql import SqlSchedulingRepository
from volunteer_scheduler.services.template import build_template
from volunteer_scheduler.services.timezone import TimeZoneProjector

# Tuesday 2026-10-20, 10:00 in New York (EDT, five days before DST ends)
FIXED_NOW = datetime(2026, 10, 20, 14, 0, tzinfo=timezone.utc)
ZONE = "America/New_York"


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def repo(session):
    return SqlSchedulingRepository(session)


@pytest.fixture
def projector():
    return TimeZoneProjector(ZONE, clock=lambda: FIXED_NOW)


@pytest.fixture
def published():
    return []


@pytest.fixture
def bus(published):
    b = EventBus()
    b.subscribe_all(published.append)
    return b


@pytest.fixture
def template():
    """template({1: [("09:00", "12:00")]}) -> WeeklyTemplate (keys are weekday numbers)."""

    def _make(days):
        return build_template([
            {
                "day_of_week": dow,
                "time_ranges": [
                    {"id": f"{dow}-{i}", "start": start, "end": end}
                    for i, (start, end) in enumerate(ranges)
                ],
            }
            for dow, ranges in days.items()
        ])

    return _make


@pytest.fixture
def make_slot(session, projector):
    """Persist a slot given its local date and HH:MM wall-clock bounds."""

    def _make(provider_id, local_date: date, start: str, end: str, group="grp", hidden=False):
        sh, sm = map(int, start.split(":"))
        eh, em = map(int, end.split(":"))
        start_at = projector.to_instant(local_date, time(sh, sm))
        slot = AvailabilitySlot(
            id="slot_" + uuid.uuid4().hex[:12],
            provider_id=provider_id,
            start=start_at,
            end=start_at + (timedelta(hours=eh, minutes=em) - timedelta(hours=sh, minutes=sm)),
            recurrence_group_id=group,
            hidden=hidden,
        )
        session.add(slot)
        session.commit()
        return slot

    return _make


@pytest.fixture
def make_appointment(session):
    def _make(slot, status=AppointmentStatus.confirmed, requester_id="ind_1"):
        appt = Appointment(
            id="appt_" + uuid.uuid4().hex[:12],
            slot_id=slot.id,
            provider_id=slot.provider_id,
            requester_id=requester_id,
            start=slot.start,
            end=slot.end,
            status=status,
        )
        session.add(appt)
        session.commit()
        return appt

    return _make
