"""
Schedule service: booking grid and therapist availability
"""
import logging
from datetime import date, time, datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from ..models.blocked_slot import BlockedSlot
from ..config import get_settings
from ..exceptions import InvalidRequest
from .slots import TimeSlot, default_grid
from .availability import AppointmentSlice, BlockedInterval, available_slots, is_slot_available
from .repository import SpaRepository

settings = get_settings()
logger = logging.getLogger(__name__)


class ScheduleService:
    """Availability of therapists over the working-day grid"""

    def __init__(self, db: Session, repository: Optional[SpaRepository] = None):
        self.db = db
        self.repository = repository or SpaRepository(db)
        self.settings = settings
        self.closing_time = settings.closing_time

    def get_grid(self) -> List[TimeSlot]:
        """Every candidate start time of a working day"""
        return default_grid(self.settings)

    def get_appointment_slices(self, therapist_id: int, target_date: date) -> List[AppointmentSlice]:
        return [
            AppointmentSlice.from_model(apt)
            for apt in self.repository.list_appointments(therapist_id, target_date)
        ]

    def get_blocked_intervals(self, therapist_id: int, target_date: date) -> List[BlockedInterval]:
        return [
            BlockedInterval.from_model(blocked)
            for blocked in self.repository.list_blocked_ranges(therapist_id, target_date)
        ]

    def get_available_slots(
        self,
        therapist_id: int,
        target_date: date,
        service_duration: Optional[int] = None
    ) -> List[TimeSlot]:
        """
        Free start times for a therapist on a date
        Without a service duration the whole grid is returned
        """
        return available_slots(
            self.get_grid(),
            target_date,
            therapist_id,
            service_duration,
            self.get_appointment_slices(therapist_id, target_date),
            self.get_blocked_intervals(therapist_id, target_date),
            self.closing_time,
        )

    def is_slot_available(
        self,
        therapist_id: int,
        target_date: date,
        slot: TimeSlot,
        service_duration: int
    ) -> bool:
        """
        Check a single start time
        The slot must be on the grid and the whole session must fit
        """
        if slot not in self.get_grid():
            return False

        return is_slot_available(
            slot,
            target_date,
            therapist_id,
            service_duration,
            self.get_appointment_slices(therapist_id, target_date),
            self.get_blocked_intervals(therapist_id, target_date),
            self.closing_time,
        )

    def get_available_dates(
        self,
        therapist_id: int,
        service_duration: Optional[int] = None,
        days_ahead: Optional[int] = None,
        today: Optional[date] = None
    ) -> List[date]:
        """
        Upcoming dates with at least one free slot
        """
        if days_ahead is None:
            days_ahead = settings.BOOKING_DAYS_AHEAD
        today = today or date.today()

        available_dates = []
        for i in range(days_ahead):
            check_date = today + timedelta(days=i)
            if self.get_available_slots(therapist_id, check_date, service_duration):
                available_dates.append(check_date)

        return available_dates

    def block_range(
        self,
        therapist_id: int,
        target_date: date,
        start_time: time,
        end_time: time,
        created_by: str,
        reason: Optional[str] = None
    ) -> BlockedSlot:
        """
        Block a time range for a therapist
        Existing appointments are left alone
        """
        if start_time >= end_time:
            raise InvalidRequest("Blocked range must end after it starts")

        self.repository.get_therapist(therapist_id)
        blocked = self.repository.add_blocked_range(BlockedSlot(
            therapist_id=therapist_id,
            blocked_date=target_date,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            created_by=created_by
        ))
        self.db.commit()
        self.db.refresh(blocked)
        logger.info(
            f"Blocked {target_date} {start_time:%H:%M}-{end_time:%H:%M} for therapist {therapist_id}"
            f" ({reason or 'no reason'})"
        )
        return blocked

    def unblock_range(self, blocked_id: int) -> None:
        """
        Remove a blocked range
        """
        self.repository.delete_blocked_range(blocked_id)
        self.db.commit()
        logger.info(f"Blocked range {blocked_id} removed")


def slot_datetime(target_date: date, slot_time: time) -> datetime:
    return datetime.combine(target_date, slot_time)
