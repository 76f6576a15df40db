"""
Persistence for appointments, blocked ranges and vouchers

Writes are flushed, not committed: the calling service owns the
transaction, so an appointment insert and its voucher redemption commit
or roll back together.
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import (
    NotFound,
    SlotNoLongerAvailable,
    VoucherNotFound,
    ConcurrentRedemptionConflict,
)
from ..models.appointment import Appointment
from ..models.blocked_slot import BlockedSlot
from ..models.notification import Notification
from ..models.service import Service
from ..models.therapist import Therapist, TherapistService
from ..models.voucher import Voucher, VoucherRedemption
from .vouchers import Money, UserOwner, VoucherSnapshot, RedemptionRecord

logger = logging.getLogger(__name__)


class SpaRepository:
    """Database operations used by the scheduling and voucher services"""

    def __init__(self, db: Session):
        self.db = db

    # ==================== Appointments ====================

    def list_appointments(self, therapist_id: int, day: date) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.therapist_id == therapist_id,
            Appointment.appointment_date == day
        ).order_by(Appointment.appointment_time).all()

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """
        Add an appointment inside the current transaction

        Raises:
            SlotNoLongerAvailable: another live appointment holds the same
                therapist/date/start (partial unique index)
        """
        self.db.add(appointment)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                f"Slot {appointment.appointment_date} {appointment.appointment_time} "
                f"for therapist {appointment.therapist_id} taken concurrently: {e.orig}"
            )
            raise SlotNoLongerAvailable()
        return appointment

    def update_appointment_status(self, appointment_id: int, status: str) -> Appointment:
        """
        Raises:
            NotFound: no appointment with this id
            SlotNoLongerAvailable: reopening collides with a live appointment
        """
        appointment = self.get_appointment(appointment_id)
        appointment.status = status
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise SlotNoLongerAvailable(
                "Another appointment already holds this time, it cannot be reopened"
            )
        return appointment

    def delete_appointment(self, appointment_id: int) -> None:
        """
        Remove an appointment and its notification log

        Redemptions keep their record; only the appointment link is cleared.

        Raises:
            NotFound: no appointment with this id
        """
        appointment = self.get_appointment(appointment_id)
        self.db.execute(
            update(VoucherRedemption)
            .where(VoucherRedemption.appointment_id == appointment_id)
            .values(appointment_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.query(Notification).filter(
            Notification.appointment_id == appointment_id
        ).delete(synchronize_session=False)
        self.db.delete(appointment)
        self.db.flush()

    # ==================== Blocked ranges ====================

    def list_blocked_ranges(self, therapist_id: int, day: date) -> List[BlockedSlot]:
        return self.db.query(BlockedSlot).filter(
            BlockedSlot.therapist_id == therapist_id,
            BlockedSlot.blocked_date == day
        ).order_by(BlockedSlot.start_time).all()

    def add_blocked_range(self, blocked: BlockedSlot) -> BlockedSlot:
        self.db.add(blocked)
        self.db.flush()
        return blocked

    def delete_blocked_range(self, blocked_id: int) -> None:
        blocked = self.db.query(BlockedSlot).filter(BlockedSlot.id == blocked_id).first()
        if not blocked:
            raise NotFound(f"Blocked range {blocked_id} not found")
        self.db.delete(blocked)
        self.db.flush()

    # ==================== Catalogue ====================

    def get_service(self, service_id: int) -> Service:
        service = self.db.query(Service).filter(
            Service.id == service_id,
            Service.is_active == True  # noqa: E712
        ).first()
        if not service:
            raise NotFound(f"Service {service_id} not found")
        return service

    def get_therapist(self, therapist_id: int) -> Therapist:
        therapist = self.db.query(Therapist).filter(
            Therapist.id == therapist_id,
            Therapist.is_active == True  # noqa: E712
        ).first()
        if not therapist:
            raise NotFound(f"Therapist {therapist_id} not found")
        return therapist

    def therapist_performs(self, therapist_id: int, service_id: int) -> bool:
        """True when the therapist offers the service, or has no service list at all"""
        links = self.db.query(TherapistService.service_id).filter(
            TherapistService.therapist_id == therapist_id
        ).all()
        if not links:
            return True
        return any(link.service_id == service_id for link in links)

    # ==================== Vouchers ====================

    def find_voucher_by_code(self, code: str) -> Optional[Voucher]:
        return self.db.query(Voucher).filter(Voucher.code == code.strip().upper()).first()

    def get_voucher_by_code(self, code: str) -> Voucher:
        voucher = self.find_voucher_by_code(code)
        if not voucher:
            raise VoucherNotFound(f"Voucher {code} not found")
        return voucher

    def voucher_code_exists(self, code: str) -> bool:
        return self.db.query(Voucher.id).filter(Voucher.code == code).first() is not None

    def insert_voucher(self, voucher: Voucher) -> Voucher:
        self.db.add(voucher)
        self.db.flush()
        return voucher

    def update_voucher(self, updated: VoucherSnapshot, expected_version: int) -> None:
        """
        Compare-and-swap the voucher's balance, status and owner

        Raises:
            ConcurrentRedemptionConflict: the stored version is no longer expected_version
        """
        values = {
            "status": updated.status.value,
            "version": updated.version,
        }
        if isinstance(updated.quantity, Money):
            values["remaining_value"] = updated.quantity.remaining
        else:
            values["remaining_sessions"] = updated.quantity.remaining
        if isinstance(updated.owner, UserOwner):
            values["user_id"] = updated.owner.user_id

        result = self.db.execute(
            update(Voucher)
            .where(Voucher.id == updated.id, Voucher.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning(f"Voucher {updated.code} changed concurrently (expected version {expected_version})")
            raise ConcurrentRedemptionConflict()

    def apply_voucher_redemption(self, updated: VoucherSnapshot, record: RedemptionRecord,
                                 expected_version: int) -> VoucherRedemption:
        """
        Write the new balance and the redemption record in the current transaction

        Raises:
            ConcurrentRedemptionConflict: another write got there first
        """
        self.update_voucher(updated, expected_version)

        redemption = VoucherRedemption(
            voucher_id=record.voucher_id,
            voucher_code=record.voucher_code,
            appointment_id=record.appointment_id,
            redeemed_value=record.redeemed_value,
            redeemed_sessions=record.redeemed_sessions,
            redeemed_by=record.redeemed_by,
            notes=record.notes,
            redemption_date=record.redemption_date,
        )
        self.db.add(redemption)
        self.db.flush()
        return redemption

    def list_redemptions(self, voucher_id: int) -> List[VoucherRedemption]:
        return self.db.query(VoucherRedemption).filter(
            VoucherRedemption.voucher_id == voucher_id
        ).order_by(VoucherRedemption.redemption_date, VoucherRedemption.id).all()
