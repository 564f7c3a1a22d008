from datetime import time
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidConfigurationError
from app.admin.services.shift_generator import generate_shifts


def windows(shifts):
    return [(s.shift_number, s.start_time, s.end_time) for s in shifts]


def test_consecutive_windows_from_start_time():
    shifts = generate_shifts(3, 4, "06:00")

    assert windows(shifts) == [
        (1, time(6, 0), time(10, 0)),
        (2, time(10, 0), time(14, 0)),
        (3, time(14, 0), time(18, 0)),
    ]


def test_windows_wrap_past_midnight():
    shifts = generate_shifts(2, 8, "20:00")

    assert windows(shifts) == [
        (1, time(20, 0), time(4, 0)),
        (2, time(4, 0), time(12, 0)),
    ]


def test_full_day_of_four_shifts_ends_where_it_started():
    shifts = generate_shifts(4, 6, "07:30")

    assert shifts[0].start_time == time(7, 30)
    assert shifts[-1].end_time == time(7, 30)
    for previous, current in zip(shifts, shifts[1:]):
        assert previous.end_time == current.start_time


def test_fractional_hours():
    shifts = generate_shifts(2, Decimal("1.5"), "09:15")

    assert windows(shifts) == [
        (1, time(9, 15), time(10, 45)),
        (2, time(10, 45), time(12, 15)),
    ]


def test_as_dict_uses_clock_strings():
    assert generate_shifts(1, 2, "8:05")[0].as_dict() == {
        "shift_number": 1,
        "start_time": "08:05",
        "end_time": "10:05",
    }


@pytest.mark.parametrize(
    "num_shifts,hours,start",
    [
        (0, 4, "06:00"),
        (5, 2, "06:00"),
        (4, 7, "06:00"),
        (3, 9, "06:00"),
        (2, 0, "06:00"),
        (2, -1, "06:00"),
        (2, Decimal("1.3333"), "06:00"),
        (2, 4, "25:00"),
        (2, 4, "06:60"),
        (2, 4, "6am"),
        (2, 4, ""),
    ],
)
def test_invalid_layouts_are_rejected(num_shifts, hours, start):
    with pytest.raises(InvalidConfigurationError):
        generate_shifts(num_shifts, hours, start)
