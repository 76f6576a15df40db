"""
Voucher service: issuing, verifying and redeeming gift vouchers
"""
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import get_settings
from ..exceptions import BookingError, InvalidRequest
from ..models.voucher import Voucher, VoucherRedemption
from .repository import SpaRepository
from .vouchers import (
    Redemption,
    VoucherCodeGenerator,
    VoucherSnapshot,
    VoucherStatus,
    VoucherType,
    bind_owner,
    expire_if_due,
    redeem,
    verify,
)

settings = get_settings()
logger = logging.getLogger(__name__)


class VoucherService:
    """Voucher lifecycle backed by the database"""

    def __init__(self, db: Session, code_generator: Optional[VoucherCodeGenerator] = None):
        self.db = db
        self.repository = SpaRepository(db)
        self.code_generator = code_generator or VoucherCodeGenerator(
            prefix=settings.VOUCHER_CODE_PREFIX,
            length=settings.VOUCHER_CODE_LENGTH,
            attempts=settings.VOUCHER_CODE_ATTEMPTS
        )

    def issue_voucher(
        self,
        voucher_type: VoucherType,
        value: Optional[Decimal] = None,
        sessions: Optional[int] = None,
        service_id: Optional[int] = None,
        user_id: Optional[str] = None,
        purchaser_name: Optional[str] = None,
        purchaser_email: Optional[str] = None,
        purchaser_phone: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> Voucher:
        """
        Create an active voucher with a fresh code

        single vouchers carry a value, package vouchers a number of sessions.
        The owner is a registered user or the guest purchaser's contacts.
        """
        voucher_type = VoucherType(voucher_type)

        if user_id and (purchaser_name or purchaser_email or purchaser_phone):
            raise InvalidRequest("A voucher is owned by a registered user or a guest purchaser, not both")

        if voucher_type == VoucherType.SINGLE:
            if value is None or Decimal(str(value)) <= 0 or sessions is not None:
                raise InvalidRequest("Single vouchers need a positive value and no sessions")
            value = Decimal(str(value))
        else:
            if sessions is None or int(sessions) != sessions or sessions <= 0 or value is not None:
                raise InvalidRequest("Package vouchers need a positive number of sessions and no value")

        if service_id is not None:
            self.repository.get_service(service_id)

        code = self.code_generator.generate(self.repository.voucher_code_exists)
        voucher = self.repository.insert_voucher(Voucher(
            code=code,
            voucher_type=voucher_type.value,
            service_id=service_id,
            original_value=value,
            remaining_value=value,
            original_sessions=sessions,
            remaining_sessions=sessions,
            status=VoucherStatus.ACTIVE.value,
            expires_at=expires_at,
            user_id=user_id,
            purchaser_name=purchaser_name,
            purchaser_email=purchaser_email,
            purchaser_phone=purchaser_phone,
            notes=notes,
            created_by=created_by,
            version=1
        ))
        self.db.commit()
        self.db.refresh(voucher)
        logger.info(f"Voucher {voucher.code} issued ({voucher_type.value})")
        return voucher

    def _save(self, updated: VoucherSnapshot, expected_version: int) -> None:
        try:
            self.repository.update_voucher(updated, expected_version)
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise

    def get_voucher(self, code: str, now: Optional[datetime] = None) -> VoucherSnapshot:
        """
        Read a voucher, persisting a lazy expiry if it is due

        Raises:
            VoucherNotFound
        """
        now = now or datetime.now()
        stored = VoucherSnapshot.from_model(self.repository.get_voucher_by_code(code))
        current = expire_if_due(stored, now)
        if current is not stored:
            self._save(current, stored.version)
        return current

    def verify_voucher(self, code: str, now: Optional[datetime] = None,
                       service_id: Optional[int] = None,
                       user_id: Optional[str] = None) -> VoucherSnapshot:
        """
        Verify a voucher for use; a guest voucher presented by a registered
        user is assigned to that user

        Raises:
            VoucherNotFound, VoucherInactive, VoucherExpired, VoucherExhausted, ServiceMismatch
        """
        now = now or datetime.now()
        voucher = verify(self.get_voucher(code, now), now, service_id)

        bound = bind_owner(voucher, user_id)
        if bound is not voucher:
            self._save(bound, voucher.version)
        return bound

    def redeem_voucher(
        self,
        code: str,
        amount,
        appointment_id: Optional[int] = None,
        redeemed_by: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        expected_version: Optional[int] = None
    ) -> Tuple[Redemption, VoucherRedemption]:
        """
        Manual redemption by staff, applied atomically

        expected_version lets the caller pin the version it verified; by
        default the version read here is used.

        Raises:
            InvalidRequest, InsufficientBalance, InsufficientSessions,
            VoucherInactive, VoucherExpired, ConcurrentRedemptionConflict
        """
        now = now or datetime.now()
        voucher = self.get_voucher(code, now)
        if expected_version is None:
            expected_version = voucher.version

        if appointment_id is not None:
            self.repository.get_appointment(appointment_id)

        try:
            redemption = redeem(voucher, amount, appointment_id, redeemed_by, notes, now)
            stored = self.repository.apply_voucher_redemption(
                redemption.updated_voucher, redemption.record, expected_version
            )
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise

        self.db.refresh(stored)
        quantity = redemption.updated_voucher.quantity
        logger.info(
            f"Voucher {voucher.code} redeemed: "
            f"{redemption.record.redeemed_value or redemption.record.redeemed_sessions} "
            f"({quantity.remaining}/{quantity.original} left, {redemption.updated_voucher.status.value})"
        )
        return redemption, stored

    def cancel_voucher(self, code: str) -> VoucherSnapshot:
        """Staff cancellation; the balance is kept for the record"""
        voucher = VoucherSnapshot.from_model(self.repository.get_voucher_by_code(code))
        if voucher.status == VoucherStatus.CANCELLED:
            return voucher

        cancelled = replace(voucher, status=VoucherStatus.CANCELLED, version=voucher.version + 1)
        self._save(cancelled, voucher.version)
        logger.info(f"Voucher {voucher.code} cancelled")
        return cancelled

    def list_redemptions(self, code: str) -> List[VoucherRedemption]:
        voucher = self.repository.get_voucher_by_code(code)
        return self.repository.list_redemptions(voucher.id)
