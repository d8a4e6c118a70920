from datetime import date, time

import pytest

from volunteer_scheduler.errors import ValidationError
from volunteer_scheduler.services.template import build_template, template_from_slots, template_to_dict


def test_build_template_parses_days_and_ranges():
    template = build_template([
        {"day_of_week": 4, "time_ranges": [{"start": "13:00", "end": "15:30"}]},
        {"day_of_week": 1, "time_ranges": [{"id": "tue", "start": "09:00", "end": "12:00"}]},
    ])

    assert [d.day_of_week for d in template.days] == [1, 4]
    assert list(template.enabled_ranges())[0][1].id == "tue"
    fri = template.days[1].time_ranges[0]
    assert fri.id == "4-0"
    assert (fri.start, fri.end) == (time(13, 0), time(15, 30))


def test_build_template_collects_every_problem():
    with pytest.raises(ValidationError) as exc_info:
        build_template([
            {"day_of_week": 0, "time_ranges": [
                {"id": "backwards", "start": "12:00", "end": "09:00"},
                {"id": "short", "start": "09:00", "end": "09:45"},
                {"id": "garbled", "start": "9am", "end": "10:00"},
            ]},
            {"day_of_week": 0, "time_ranges": []},
            {"day_of_week": 9, "time_ranges": []},
        ])

    errors = exc_info.value.errors
    assert set(errors) == {"backwards", "short", "garbled", "day-0", "day-9"}
    assert "at least 60 minutes" in errors["short"]


def test_minimum_length_is_configurable():
    template = build_template(
        [{"day_of_week": 0, "time_ranges": [{"start": "09:00", "end": "09:30"}]}],
        min_minutes=30,
    )
    assert len(list(template.enabled_ranges())) == 1


def test_duplicate_range_ids_are_rejected():
    with pytest.raises(ValidationError) as exc_info:
        build_template([
            {"day_of_week": 0, "time_ranges": [{"id": "a", "start": "09:00", "end": "10:00"}]},
            {"day_of_week": 1, "time_ranges": [{"id": "a", "start": "09:00", "end": "10:00"}]},
        ])
    assert exc_info.value.errors == {"a": "Duplicate time range id"}


def test_disabled_day_contributes_nothing():
    template = build_template([
        {"day_of_week": 2, "enabled": False, "time_ranges": [{"start": "09:00", "end": "09:15"}]},
    ])
    assert list(template.enabled_ranges()) == []


def test_template_from_slots_rebuilds_pattern(make_slot, projector):
    slots = [
        make_slot("vol_1", date(2026, 10, 27), "09:00", "12:00"),
        # after the DST change: same wall clock, different UTC hour
        make_slot("vol_1", date(2026, 11, 3), "09:00", "12:00"),
        make_slot("vol_1", date(2026, 10, 29), "14:00", "16:00"),
        make_slot("vol_1", date(2026, 10, 29), "09:00", "10:00"),
        make_slot("vol_1", date(2026, 10, 30), "09:00", "10:00", group=None),
    ]

    assert template_to_dict(template_from_slots(slots, projector)) == [
        {"day_of_week": 1, "enabled": True, "time_ranges": [
            {"id": "1-0", "start": "09:00", "end": "12:00"},
        ]},
        {"day_of_week": 3, "enabled": True, "time_ranges": [
            {"id": "3-0", "start": "09:00", "end": "10:00"},
            {"id": "3-1", "start": "14:00", "end": "16:00"},
        ]},
    ]
