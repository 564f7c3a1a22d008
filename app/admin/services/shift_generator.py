from dataclasses import dataclass
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import List, Union

from app.core.exceptions import InvalidConfigurationError
from app.core.validations import parse_clock_time

MAX_SHIFTS = 4
MAX_HOURS_WITH_MAX_SHIFTS = 6
MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class ShiftWindow:
    """Одно окно смены, без даты"""

    shift_number: int
    start_time: time
    end_time: time

    def as_dict(self) -> dict:
        return {
            "shift_number": self.shift_number,
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
        }


def _to_minutes(hours: Decimal) -> int:
    minutes = hours * 60
    if minutes != minutes.to_integral_value():
        raise InvalidConfigurationError(
            "Hours per shift must be a whole number of minutes",
            {"hours_per_shift": str(hours)},
        )
    return int(minutes)


def validate_shift_layout(num_shifts: int, hours_per_shift: Decimal) -> None:
    """Ограничения на количество смен и их длительность"""
    if num_shifts < 1:
        raise InvalidConfigurationError(
            "At least one shift is required", {"num_shifts": num_shifts}
        )

    if num_shifts > MAX_SHIFTS:
        raise InvalidConfigurationError(
            f"Shifts cannot exceed {MAX_SHIFTS}", {"num_shifts": num_shifts}
        )

    if hours_per_shift <= 0:
        raise InvalidConfigurationError(
            "Hours per shift must be positive",
            {"hours_per_shift": str(hours_per_shift)},
        )

    if num_shifts == MAX_SHIFTS and hours_per_shift > MAX_HOURS_WITH_MAX_SHIFTS:
        raise InvalidConfigurationError(
            f"Hours per shift cannot exceed {MAX_HOURS_WITH_MAX_SHIFTS} "
            f"when configuring {MAX_SHIFTS} shifts",
            {"num_shifts": num_shifts, "hours_per_shift": str(hours_per_shift)},
        )

    if hours_per_shift * num_shifts > 24:
        raise InvalidConfigurationError(
            "Total shift hours cannot exceed 24",
            {"num_shifts": num_shifts, "hours_per_shift": str(hours_per_shift)},
        )


def generate_shifts(
    num_shifts: int,
    hours_per_shift: Union[int, float, Decimal],
    start_time: Union[str, time],
) -> List[ShiftWindow]:
    """
    Generate consecutive, non-overlapping shift windows.

    The first window starts at ``start_time``; each next one starts where the
    previous ended. Times wrap around midnight.

    Raises:
        InvalidConfigurationError: on count / duration / start time violations
    """
    try:
        hours = Decimal(str(hours_per_shift))
    except InvalidOperation:
        raise InvalidConfigurationError(
            "Hours per shift must be a number",
            {"hours_per_shift": str(hours_per_shift)},
        )

    validate_shift_layout(num_shifts, hours)

    if isinstance(start_time, time):
        start = start_time
    else:
        start = parse_clock_time(start_time, InvalidConfigurationError)

    duration = _to_minutes(hours)
    cursor = start.hour * 60 + start.minute

    shifts = []
    for index in range(num_shifts):
        begin = cursor % MINUTES_PER_DAY
        cursor += duration
        end = cursor % MINUTES_PER_DAY

        shifts.append(
            ShiftWindow(
                shift_number=index + 1,
                start_time=time(begin // 60, begin % 60),
                end_time=time(end // 60, end % 60),
            )
        )

    return shifts
