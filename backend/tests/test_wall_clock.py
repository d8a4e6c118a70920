from datetime import time

import pytest

from volunteer_scheduler.errors import ValidationError
from volunteer_scheduler.services.wall_clock import parse_hhmm, parse_wall_clock


@pytest.mark.parametrize("text,expected", [
    ("11am", time(11, 0)),
    ("11:30am", time(11, 30)),
    ("2:30 PM", time(14, 30)),
    ("2:30 p.m.", time(14, 30)),
    (" 9 A.M ", time(9, 0)),
    ("12am", time(0, 0)),
    ("12:15 AM", time(0, 15)),
    ("12pm", time(12, 0)),
])
def test_parse_wall_clock(text, expected):
    assert parse_wall_clock(text) == expected


@pytest.mark.parametrize("text", ["", "noon", "14:00", "13pm", "0am", "2:60pm", "2:3pm", "11 o'clock"])
def test_parse_wall_clock_rejects(text):
    with pytest.raises(ValidationError):
        parse_wall_clock(text)


def test_parse_hhmm():
    assert parse_hhmm("09:00") == time(9, 0)
    assert parse_hhmm("9:05") == time(9, 5)
    assert parse_hhmm("23:59") == time(23, 59)
    for bad in ("24:00", "12:60", "9am", "0900", None):
        with pytest.raises(ValidationError):
            parse_hhmm(bad)
