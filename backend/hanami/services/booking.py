"""
Booking service: creating appointments, status changes, voucher quotes
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..config import get_settings
from ..exceptions import BookingError, InvalidRequest, NotFound, SlotNoLongerAvailable
from ..models.appointment import Appointment
from .lifecycle import Actor, AppointmentStatus, fits_business_hours, transition
from .notifications import NotificationService, notification_service
from .repository import SpaRepository
from .schedule import ScheduleService, slot_datetime
from .slots import TimeSlot, to_minutes
from .vouchers import (
    Redemption,
    VoucherSnapshot,
    bind_owner,
    booking_amount,
    effective_price,
    expire_if_due,
    redeem,
    verify,
)

settings = get_settings()
logger = logging.getLogger(__name__)


# ==================== Client reference ====================

@dataclass(frozen=True)
class UserClient:
    """Registered client"""
    user_id: str


@dataclass(frozen=True)
class GuestClient:
    """Walk-in / phone client without an account"""
    name: str
    phone: str


ClientRef = Union[UserClient, GuestClient]


def normalize_phone(phone: str) -> str:
    """Keep digits and a leading +"""
    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    return f"+{digits}" if phone.startswith("+") else digits


def client_ref(user_id: Optional[str] = None, guest_name: Optional[str] = None,
               guest_phone: Optional[str] = None) -> ClientRef:
    """
    Build the client reference from loose request fields

    Raises:
        InvalidRequest: both or neither of user / guest given, or an incomplete guest
    """
    has_guest = bool(guest_name or guest_phone)
    if user_id and has_guest:
        raise InvalidRequest("An appointment belongs to a registered user or a guest, not both")
    if user_id:
        return UserClient(user_id)
    if not (guest_name and guest_phone):
        raise InvalidRequest("Guest appointments need a name and a phone number")
    phone = normalize_phone(guest_phone)
    if len(phone.lstrip("+")) < 7:
        raise InvalidRequest("Invalid guest phone number")
    return GuestClient(guest_name.strip(), phone)


# ==================== Requests / results ====================

@dataclass
class BookingRequest:
    therapist_id: int
    service_id: int
    appointment_date: date
    start: TimeSlot
    client: ClientRef
    actor: Actor = Actor.CLIENT
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: Optional[str] = None
    voucher_code: Optional[str] = None


@dataclass
class BookingResult:
    appointment: Appointment
    price: Decimal
    effective_price: Decimal
    redemption: Optional[Redemption] = None


@dataclass
class Quote:
    service_id: int
    price: Decimal
    effective_price: Decimal
    voucher: Optional[VoucherSnapshot] = None


class BookingService:
    """Appointment creation and lifecycle on top of the schedule and voucher ledger"""

    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.repository = SpaRepository(db)
        self.schedule = ScheduleService(db, self.repository)
        self.notifier = notifier or notification_service
        self.window_hours = settings.CANCELLATION_WINDOW_HOURS

    def _usable_voucher(self, code: str, service_id: int, now: datetime,
                        user_id: Optional[str] = None):
        """Verified voucher (bound to user_id when guest-owned) and the version read"""
        stored = VoucherSnapshot.from_model(self.repository.get_voucher_by_code(code))
        verified = verify(expire_if_due(stored, now), now, service_id)
        return bind_owner(verified, user_id), stored.version

    def quote(self, service_id: int, voucher_code: Optional[str] = None,
              now: Optional[datetime] = None) -> Quote:
        """Service price with and without the voucher"""
        now = now or datetime.now()
        service = self.repository.get_service(service_id)
        price = Decimal(service.price)

        voucher = None
        if voucher_code:
            voucher = VoucherSnapshot.from_model(self.repository.get_voucher_by_code(voucher_code))
            voucher = verify(expire_if_due(voucher, now), now, service.id)

        return Quote(
            service_id=service.id,
            price=price,
            effective_price=effective_price(price, voucher),
            voucher=voucher
        )

    async def book_appointment(self, request: BookingRequest, now: Optional[datetime] = None) -> BookingResult:
        """
        Create an appointment and redeem its voucher in one transaction

        The voucher covers the price up to its remaining value (single) or
        one session (package). The notification goes out after the commit.

        Raises:
            NotFound: unknown service or therapist
            InvalidRequest: session runs past closing, slot in the past, service not offered
            SlotNoLongerAvailable: the slot is taken (checked, then guarded by the unique index)
            VoucherNotFound, VoucherInactive, VoucherExpired, VoucherExhausted, ServiceMismatch
            ConcurrentRedemptionConflict: voucher changed while booking
        """
        now = now or datetime.now()
        service = self.repository.get_service(request.service_id)
        self.repository.get_therapist(request.therapist_id)

        if not self.repository.therapist_performs(request.therapist_id, service.id):
            raise InvalidRequest("This therapist does not perform the selected service")

        if not fits_business_hours(request.start.minutes, service.duration_minutes,
                                   to_minutes(self.schedule.closing_time)):
            raise InvalidRequest(
                f"A {service.duration_minutes} minute session starting at {request.start} "
                f"ends after closing time"
            )

        if request.start not in self.schedule.get_grid():
            raise InvalidRequest(f"{request.start} is not a bookable start time")

        starts_at = slot_datetime(request.appointment_date, request.start.to_time())
        if request.actor == Actor.CLIENT and starts_at <= now:
            raise InvalidRequest("Cannot book a time in the past")

        user_id = request.client.user_id if isinstance(request.client, UserClient) else None
        price = Decimal(service.price)

        try:
            if not self.schedule.is_slot_available(request.therapist_id, request.appointment_date,
                                                   request.start, service.duration_minutes):
                raise SlotNoLongerAvailable()

            voucher, expected_version = None, None
            if request.voucher_code:
                voucher, expected_version = self._usable_voucher(
                    request.voucher_code, service.id, now, user_id
                )

            appointment = Appointment(
                therapist_id=request.therapist_id,
                service_id=service.id,
                appointment_date=request.appointment_date,
                appointment_time=request.start.to_time(),
                duration_minutes=service.duration_minutes,
                status=AppointmentStatus(request.status).value,
                client_user_id=user_id,
                guest_name=request.client.name if isinstance(request.client, GuestClient) else None,
                guest_phone=request.client.phone if isinstance(request.client, GuestClient) else None,
                notes=request.notes,
                voucher_code=voucher.code if voucher else None
            )
            self.repository.insert_appointment(appointment)

            redemption = None
            amount = booking_amount(voucher, price) if voucher else 0
            if amount > 0:
                redemption = redeem(
                    voucher,
                    amount,
                    appointment_id=appointment.id,
                    redeemed_by=user_id,
                    notes=f"Booking #{appointment.id}",
                    now=now
                )
                self.repository.apply_voucher_redemption(
                    redemption.updated_voucher, redemption.record, expected_version=expected_version
                )
            elif voucher and voucher.version != expected_version:
                # free service: nothing to redeem, keep the owner binding
                self.repository.update_voucher(voucher, expected_version)

            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment #{appointment.id} booked: therapist {appointment.therapist_id}, "
            f"{appointment.appointment_date} {request.start}, status {appointment.status}"
            + (f", voucher {appointment.voucher_code}" if appointment.voucher_code else "")
        )

        await self.notifier.notify_appointment_created(appointment, service.name, self.db)

        return BookingResult(
            appointment=appointment,
            price=price,
            effective_price=effective_price(price, voucher),
            redemption=redemption
        )

    def _check_client_owns(self, appointment: Appointment, user_id: Optional[str],
                           guest_phone: Optional[str]):
        if appointment.client_user_id:
            owns = user_id is not None and appointment.client_user_id == user_id
        else:
            owns = guest_phone is not None and normalize_phone(guest_phone) == appointment.guest_phone
        if not owns:
            raise NotFound(f"Appointment {appointment.id} not found")

    async def change_status(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        actor: Actor,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
        guest_phone: Optional[str] = None
    ) -> Appointment:
        """
        The one entry point for appointment status changes

        Staff may set any status; clients may only cancel their own
        appointment outside the cancellation window.
        """
        now = now or datetime.now()
        appointment = self.repository.get_appointment(appointment_id)
        actor = Actor(actor)

        if not actor.is_staff:
            self._check_client_owns(appointment, user_id, guest_phone)

        starts_at = slot_datetime(appointment.appointment_date, appointment.appointment_time)
        previous = appointment.status
        new_status = transition(previous, target, actor, starts_at, now, self.window_hours)

        if new_status.value == previous:
            return appointment

        if new_status == AppointmentStatus.COMPLETED and starts_at > now:
            logger.warning(f"Appointment #{appointment.id} marked completed before it starts ({starts_at})")

        try:
            self.repository.update_appointment_status(appointment.id, new_status.value)
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"Appointment #{appointment.id}: {previous} -> {appointment.status} by {actor.value}")

        await self.notifier.notify_status_changed(appointment, previous, self.db)
        return appointment

    async def cancel_by_client(self, appointment_id: int, now: Optional[datetime] = None,
                               user_id: Optional[str] = None,
                               guest_phone: Optional[str] = None) -> Appointment:
        """Self-service cancellation, refused inside the cancellation window"""
        return await self.change_status(
            appointment_id, AppointmentStatus.CANCELLED, Actor.CLIENT,
            now=now, user_id=user_id, guest_phone=guest_phone
        )

    def delete_appointment(self, appointment_id: int, actor: Actor) -> None:
        """
        Staff-only hard delete

        Voucher redemptions made for the appointment stay in the ledger with
        their appointment link cleared; the balance is not restored.

        Raises:
            InvalidRequest: a client asked for the deletion
            NotFound: no appointment with this id
        """
        actor = Actor(actor)
        if not actor.is_staff:
            raise InvalidRequest("Only staff can delete appointments")

        try:
            self.repository.delete_appointment(appointment_id)
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise

        logger.info(f"Appointment #{appointment_id} deleted by {actor.value}")
