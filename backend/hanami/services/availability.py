"""
Availability calculator

Pure filtering of the booking grid against appointments and blocked
ranges. Storage access lives in ScheduleService; this module only sees
snapshots and never mutates them.
"""
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .slots import TimeSlot, TimeLike, to_minutes
from .lifecycle import BLOCKING_STATUSES


@dataclass(frozen=True)
class AppointmentSlice:
    """The part of an appointment that occupies a therapist"""

    therapist_id: int
    day: date
    start: TimeSlot
    duration_minutes: int
    status: str

    @property
    def end_minutes(self) -> int:
        return self.start.minutes + self.duration_minutes

    @classmethod
    def from_model(cls, appointment) -> "AppointmentSlice":
        return cls(
            therapist_id=appointment.therapist_id,
            day=appointment.appointment_date,
            start=TimeSlot.from_time(appointment.appointment_time),
            duration_minutes=appointment.duration_minutes,
            status=appointment.status,
        )


@dataclass(frozen=True)
class BlockedInterval:
    """Staff-declared unavailability window"""

    therapist_id: int
    day: date
    start: TimeSlot
    end: TimeSlot
    reason: Optional[str] = None

    @classmethod
    def from_model(cls, blocked) -> "BlockedInterval":
        return cls(
            therapist_id=blocked.therapist_id,
            day=blocked.blocked_date,
            start=TimeSlot.from_time(blocked.start_time),
            end=TimeSlot.from_time(blocked.end_time),
            reason=blocked.reason,
        )


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open intervals [a, b) overlap; touching endpoints do not"""
    return start_a < end_b and end_a > start_b


def _busy_intervals(day, therapist_id, appointments, blocked_ranges):
    busy = []
    for apt in appointments:
        if apt.therapist_id != therapist_id or apt.day != day:
            continue
        # cancelled never blocks, completed is not checked either
        if apt.status not in BLOCKING_STATUSES:
            continue
        busy.append((apt.start.minutes, apt.end_minutes))

    for blocked in blocked_ranges:
        if blocked.therapist_id != therapist_id or blocked.day != day:
            continue
        busy.append((blocked.start.minutes, blocked.end.minutes))
    return busy


def available_slots(
    grid: Iterable[TimeSlot],
    day: date,
    therapist_id: int,
    duration_minutes: Optional[int],
    existing_appointments: Iterable[AppointmentSlice],
    blocked_ranges: Iterable[BlockedInterval],
    closing_time: TimeLike,
) -> List[TimeSlot]:
    """
    Slots from the grid where a session of duration_minutes fits

    A slot is rejected when the session would run past closing_time, or
    overlaps a pending/confirmed appointment or a blocked range of the same
    therapist on the same day. Surviving slots keep grid order.

    Without a duration (no service chosen yet) the grid is returned as is.
    """
    grid = list(grid)
    if duration_minutes is None:
        return grid

    closing = to_minutes(closing_time)
    busy = _busy_intervals(day, therapist_id, existing_appointments, blocked_ranges)

    result = []
    for slot in grid:
        start = slot.minutes
        end = start + duration_minutes
        if end > closing:
            continue
        if any(overlaps(start, end, busy_start, busy_end) for busy_start, busy_end in busy):
            continue
        result.append(slot)
    return result


def is_slot_available(
    slot: TimeSlot,
    day: date,
    therapist_id: int,
    duration_minutes: int,
    existing_appointments: Iterable[AppointmentSlice],
    blocked_ranges: Iterable[BlockedInterval],
    closing_time: TimeLike,
) -> bool:
    """Single-candidate form of available_slots"""
    return bool(available_slots(
        [slot], day, therapist_id, duration_minutes,
        existing_appointments, blocked_ranges, closing_time,
    ))
