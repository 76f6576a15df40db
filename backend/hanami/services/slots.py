"""
Booking grid: wall-clock slot labels for a working day
"""
from dataclasses import dataclass
from datetime import time
from typing import List, Union

from ..exceptions import InvalidConfiguration

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class TimeSlot:
    """Wall-clock start time on the booking grid (HH:MM)"""

    hour: int
    minute: int

    def __post_init__(self):
        if not (0 <= self.hour < 24 and 0 <= self.minute < 60):
            raise ValueError(f"Invalid time slot {self.hour}:{self.minute}")

    @classmethod
    def parse(cls, label: str) -> "TimeSlot":
        hour, minute = label.split(":")[:2]
        return cls(int(hour), int(minute))

    @classmethod
    def from_time(cls, value: time) -> "TimeSlot":
        return cls(value.hour, value.minute)

    @classmethod
    def from_minutes(cls, minutes: int) -> "TimeSlot":
        return cls(minutes // 60, minutes % 60)

    @property
    def minutes(self) -> int:
        """Minutes since midnight"""
        return self.hour * 60 + self.minute

    @property
    def label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def __str__(self):
        return self.label


TimeLike = Union[TimeSlot, time, str]


def to_minutes(value: TimeLike) -> int:
    """Minutes since midnight for a TimeSlot, datetime.time or "HH:MM" label"""
    if isinstance(value, TimeSlot):
        return value.minutes
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    return TimeSlot.parse(value).minutes


def generate_slots(open_time: TimeLike, close_time: TimeLike, step_minutes: int) -> List[TimeSlot]:
    """
    Generate the grid from open_time, every step_minutes, strictly before close_time

    Fitting a service duration into the day is left to the availability
    calculator, so the last slot may start just before closing.

    Raises:
        InvalidConfiguration: malformed bounds, close_time <= open_time or step_minutes <= 0
    """
    try:
        start = to_minutes(open_time)
        end = to_minutes(close_time)
    except ValueError as e:
        raise InvalidConfiguration(f"Invalid business hours {open_time!r}-{close_time!r}: {e}")

    if step_minutes is None or step_minutes <= 0:
        raise InvalidConfiguration(f"Slot step must be positive, got {step_minutes}")
    if end <= start:
        raise InvalidConfiguration(
            f"Closing time {TimeSlot.from_minutes(end)} must be after opening time {TimeSlot.from_minutes(start)}"
        )

    return [TimeSlot.from_minutes(minute) for minute in range(start, end, step_minutes)]


def default_grid(settings) -> List[TimeSlot]:
    """Grid built from OPENING_TIME / CLOSING_TIME / SLOT_STEP_MINUTES"""
    return generate_slots(settings.OPENING_TIME, settings.CLOSING_TIME, settings.SLOT_STEP_MINUTES)
