"""
Appointment status lifecycle and cancellation policy
"""
import logging
from datetime import datetime, timedelta
from enum import Enum

from ..exceptions import CancellationWindowClosed, InvalidRequest

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_WINDOW_HOURS = 24


class AppointmentStatus(str, Enum):
    """Appointment states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy the therapist's time
BLOCKING_STATUSES = frozenset({AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value})


class Actor(str, Enum):
    """Who asks for a status change"""
    ADMIN = "admin"
    THERAPIST = "therapist"
    CLIENT = "client"

    @property
    def is_staff(self) -> bool:
        return self in (Actor.ADMIN, Actor.THERAPIST)


def can_cancel(appointment_at: datetime, now: datetime,
               window_hours: int = DEFAULT_CANCELLATION_WINDOW_HOURS) -> bool:
    """True while the appointment is more than window_hours away"""
    return (appointment_at - now) > timedelta(hours=window_hours)


def fits_business_hours(start_minutes: int, duration_minutes: int, closing_minutes: int) -> bool:
    """start + duration must not run past closing time"""
    return start_minutes + duration_minutes <= closing_minutes


def transition(
    current,
    target,
    actor: Actor,
    appointment_at: datetime,
    now: datetime,
    window_hours: int = DEFAULT_CANCELLATION_WINDOW_HOURS,
) -> AppointmentStatus:
    """
    Validate a status change and return the new status

    Staff (admin, therapist) may move between any two states, including
    reopening a cancelled appointment. Clients may only cancel, and only
    while can_cancel() holds.

    Raises:
        InvalidRequest: unknown status, or a client asking for anything but cancellation
        CancellationWindowClosed: client cancellation inside the window
    """
    try:
        current = AppointmentStatus(current)
        target = AppointmentStatus(target)
        actor = Actor(actor)
    except ValueError as e:
        raise InvalidRequest(str(e))

    if actor.is_staff:
        return target

    if target != AppointmentStatus.CANCELLED:
        raise InvalidRequest("Clients can only cancel their appointments")

    if current == AppointmentStatus.CANCELLED:
        return target

    if not can_cancel(appointment_at, now, window_hours):
        logger.warning(f"Self-cancellation refused, appointment at {appointment_at:%Y-%m-%d %H:%M} is too close")
        raise CancellationWindowClosed(
            f"Appointments can only be cancelled online more than {window_hours} hours in advance. "
            f"Please contact the salon directly."
        )

    return target
