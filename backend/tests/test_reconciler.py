from datetime import date

import pytest
from sqlmodel import Session, select

from volunteer_scheduler.errors import ConflictError, TemplateConflictError
from volunteer_scheduler.models import AppointmentStatus, AvailabilitySlot
from volunteer_scheduler.services.booking import BookingCoordinator
from volunteer_scheduler.services.events import SlotsRegenerated
from volunteer_scheduler.services.reconciler import RegenerationReconciler
from volunteer_scheduler.services.repository_sql import SqlSchedulingRepository
from volunteer_scheduler.services.template import build_template

WEDNESDAYS = [date(2026, 10, 21), date(2026, 10, 28), date(2026, 11, 4)]


def all_slots(session, provider_id="vol_1"):
    session.expire_all()
    return list(session.exec(
        select(AvailabilitySlot).where(AvailabilitySlot.provider_id == provider_id).order_by(AvailabilitySlot.start)
    ).all())


@pytest.fixture
def reconciler(repo, projector, bus):
    return RegenerationReconciler(repo, projector, bus, horizon_weeks=12)


def test_first_save_creates_full_horizon(reconciler, session, template, published):
    result = reconciler.reconcile("vol_1", template({1: [("09:00", "12:00")]}))

    assert (result.deleted, result.created, result.skipped, result.protected_preserved) == (0, 12, 0, 0)
    assert len(all_slots(session)) == 12
    assert published == [SlotsRegenerated(provider_id="vol_1", deleted=0, created=12, skipped=0)]


def test_clearing_a_day_keeps_the_booked_slot(reconciler, session, make_slot, make_appointment):
    slots = [make_slot("vol_1", d, "14:00", "16:00") for d in WEDNESDAYS]
    make_appointment(slots[1], AppointmentStatus.confirmed)

    result = reconciler.reconcile("vol_1", build_template([]))

    assert (result.deleted, result.created, result.protected_preserved) == (2, 0, 1)
    assert [s.id for s in all_slots(session)] == [slots[1].id]


def test_pending_appointment_also_protects(reconciler, session, make_slot, make_appointment):
    slot = make_slot("vol_1", WEDNESDAYS[0], "14:00", "16:00")
    make_appointment(slot, AppointmentStatus.pending)

    result = reconciler.reconcile("vol_1", build_template([]))

    assert (result.deleted, result.protected_preserved) == (0, 1)
    assert [s.id for s in all_slots(session)] == [slot.id]


def test_canceled_appointment_does_not_protect(reconciler, session, make_slot, make_appointment):
    slot = make_slot("vol_1", WEDNESDAYS[0], "14:00", "16:00")
    make_appointment(slot, AppointmentStatus.canceled)

    result = reconciler.reconcile("vol_1", build_template([]))

    assert (result.deleted, result.protected_preserved) == (1, 0)
    assert all_slots(session) == []


def test_occurrence_overlapping_a_booked_slot_is_skipped(reconciler, session, template, make_slot, make_appointment):
    booked = make_slot("vol_1", date(2026, 10, 27), "09:30", "10:30", group=None)
    make_appointment(booked)

    result = reconciler.reconcile("vol_1", template({1: [("09:00", "12:00")]}))

    assert (result.deleted, result.created, result.skipped, result.protected_preserved) == (0, 11, 1, 1)
    assert [o.local_date for o in result.skipped_occurrences] == [date(2026, 10, 27)]

    stored = all_slots(session)
    assert len(stored) == 12
    assert booked.id in {s.id for s in stored}
    # the booked slot is left exactly as it was
    kept = next(s for s in stored if s.id == booked.id)
    assert (kept.start, kept.end, kept.recurrence_group_id) == (booked.start, booked.end, None)


def test_protected_slots_survive_any_sequence_of_templates(reconciler, session, template, make_appointment):
    reconciler.reconcile("vol_1", template({1: [("09:00", "12:00")], 3: [("13:00", "15:00")]}))
    first, fourth = all_slots(session)[0], all_slots(session)[3]
    make_appointment(first, AppointmentStatus.pending)
    make_appointment(fourth, AppointmentStatus.confirmed)

    for days in ({}, {1: [("08:00", "10:00")]}, {0: [("09:00", "10:00")], 3: [("12:00", "16:00")]}, {}):
        reconciler.reconcile("vol_1", template(days))
        ids = {s.id for s in all_slots(session)}
        assert {first.id, fourth.id} <= ids


def test_saving_the_same_template_twice_is_stable(reconciler, session, template):
    tpl = template({1: [("09:00", "12:00")], 4: [("13:00", "15:00")]})

    reconciler.reconcile("vol_1", tpl)
    before = {(s.start, s.end, s.recurrence_group_id) for s in all_slots(session)}
    result = reconciler.reconcile("vol_1", tpl)
    after = {(s.start, s.end, s.recurrence_group_id) for s in all_slots(session)}

    assert (result.deleted, result.created) == (24, 24)
    assert before == after


def test_other_providers_are_untouched(reconciler, session, make_slot):
    theirs = make_slot("vol_2", WEDNESDAYS[0], "14:00", "16:00")

    reconciler.reconcile("vol_1", build_template([]))

    assert [s.id for s in all_slots(session, "vol_2")] == [theirs.id]


def test_conflicting_template_is_refused_whole(reconciler, session, template, make_slot, published):
    existing = make_slot("vol_1", WEDNESDAYS[0], "14:00", "16:00")

    with pytest.raises(TemplateConflictError):
        reconciler.reconcile("vol_1", template({
            0: [("09:00", "10:30"), ("10:00", "11:00")],
            2: [("09:00", "10:00")],
        }))

    assert [s.id for s in all_slots(session)] == [existing.id]
    assert published == []


def test_occurrence_in_dst_gap_is_reported_and_the_rest_published(reconciler, session, template, make_slot):
    make_slot("vol_1", WEDNESDAYS[0], "14:00", "16:00")

    result = reconciler.reconcile("vol_1", template({6: [("02:30", "04:00")]}), earliest_date=date(2027, 3, 10))

    assert (result.deleted, result.created, result.unresolved) == (1, 11, 1)
    gap = result.unresolved_occurrences[0]
    assert (gap.day_of_week, gap.local_date) == (6, date(2027, 3, 14))
    assert "does not exist" in gap.reason

    stored = all_slots(session)
    assert len(stored) == 11
    assert date(2027, 3, 14) not in {s.start.date() for s in stored}


def test_occurrence_in_dst_fold_is_reported(reconciler, template):
    result = reconciler.reconcile("vol_1", template({6: [("01:30", "03:00")]}), earliest_date=date(2026, 10, 28))

    assert (result.created, result.unresolved) == (11, 1)
    assert result.unresolved_occurrences[0].local_date == date(2026, 11, 1)


def test_failure_midway_rolls_back_deletes(reconciler, repo, session, template, make_slot, monkeypatch):
    existing = [make_slot("vol_1", d, "14:00", "16:00") for d in WEDNESDAYS]

    def boom(slots):
        raise RuntimeError("disk full")

    monkeypatch.setattr(repo, "insert_slots", boom)

    with pytest.raises(RuntimeError):
        reconciler.reconcile("vol_1", template({1: [("09:00", "12:00")]}))

    assert {s.id for s in all_slots(session)} == {s.id for s in existing}


def test_preview_reports_counts_and_writes_nothing(reconciler, session, template, make_slot, published):
    existing = [make_slot("vol_1", d, "14:00", "16:00") for d in WEDNESDAYS]

    result = reconciler.preview("vol_1", template({1: [("09:00", "12:00")]}))

    assert (result.deleted, result.created) == (3, 12)
    assert {s.id for s in all_slots(session)} == {s.id for s in existing}
    assert published == []


class RecordingRepo:
    """Passes every call through to ``inner``, recording names and keyword arguments."""

    def __init__(self, inner, before=None):
        self.inner = inner
        self.calls = []
        # name -> callable run just before that repository method
        self.before = before or {}

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            self.calls.append((name, kwargs))
            hook = self.before.pop(name, None)
            if hook:
                hook()
            return attr(*args, **kwargs)

        return call


def test_slots_are_locked_before_protection_is_computed(repo, projector, template, make_slot):
    make_slot("vol_1", WEDNESDAYS[0], "14:00", "16:00")
    recording = RecordingRepo(repo)

    RegenerationReconciler(recording, projector).reconcile("vol_1", template({1: [("09:00", "12:00")]}))

    names = [name for name, _ in recording.calls]
    assert names.index("list_slots") < names.index("list_active_appointments_by_slot_ids") < names.index("delete_slots")
    assert dict(recording.calls)["list_slots"] == {"for_update": True}


def test_reservation_committed_before_the_lock_is_protected(engine, repo, session, projector, make_slot):
    slot = make_slot("vol_1", WEDNESDAYS[1], "14:00", "16:00")
    booked = []

    def reserve_elsewhere():
        with Session(engine, expire_on_commit=False) as other:
            booked.append(BookingCoordinator(SqlSchedulingRepository(other), projector).reserve(slot.id, "ind_1"))

    recording = RecordingRepo(repo, before={"list_slots": reserve_elsewhere})
    result = RegenerationReconciler(recording, projector).reconcile("vol_1", build_template([]))

    assert booked and booked[0].slot_id == slot.id
    assert (result.deleted, result.protected_preserved) == (0, 1)
    assert [s.id for s in all_slots(session)] == [slot.id]

    # the slot stays booked
    with pytest.raises(ConflictError):
        BookingCoordinator(repo, projector).reserve(slot.id, "ind_2")
