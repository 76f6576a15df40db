"""
API router for schedule, appointments and blocked ranges
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import date, datetime, time
from typing import Optional, List

from ..database import get_db
from ..config import get_settings
from ..models.appointment import Appointment
from ..services.booking import BookingRequest, BookingService, client_ref
from ..services.lifecycle import Actor, AppointmentStatus, can_cancel
from ..services.notifications import NotificationService, notification_service
from ..services.repository import SpaRepository
from ..services.schedule import ScheduleService, slot_datetime
from ..services.slots import TimeSlot

settings = get_settings()
router = APIRouter(prefix="/api", tags=["appointments"])


def get_notifier() -> NotificationService:
    """Dependency so tests can swap the notification dispatcher"""
    return notification_service


# ==================== Pydantic Schemas ====================

class TimeSlotResponse(BaseModel):
    time: str  # "HH:MM"
    available: bool = True


class ScheduleResponse(BaseModel):
    date: str  # "YYYY-MM-DD"
    therapist_id: int
    service_id: Optional[int] = None
    working_hours: dict  # {"start": "08:00", "end": "18:00"}
    slots: List[TimeSlotResponse]


class AppointmentCreate(BaseModel):
    therapist_id: int
    service_id: int
    appointment_date: date
    appointment_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")  # HH:MM
    actor: Actor = Actor.CLIENT
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    user_id: Optional[str] = None
    guest_name: Optional[str] = Field(None, min_length=2, max_length=100)
    guest_phone: Optional[str] = Field(None, min_length=7, max_length=20)
    notes: Optional[str] = None
    voucher_code: Optional[str] = Field(None, max_length=32)


class AppointmentResponse(BaseModel):
    id: int
    therapist_id: int
    service_id: int
    appointment_date: str
    appointment_time: str
    duration_minutes: int
    status: str
    client_user_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None
    voucher_code: Optional[str] = None
    can_cancel: bool


class BookingResponse(BaseModel):
    appointment: AppointmentResponse
    price: float
    effective_price: float


class StatusUpdate(BaseModel):
    status: AppointmentStatus
    actor: Actor
    user_id: Optional[str] = None
    guest_phone: Optional[str] = None


class ClientCancel(BaseModel):
    user_id: Optional[str] = None
    guest_phone: Optional[str] = None


class BlockedSlotCreate(BaseModel):
    therapist_id: int
    blocked_date: date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    reason: Optional[str] = Field(None, max_length=200)
    created_by: str


class BlockedSlotResponse(BaseModel):
    id: int
    therapist_id: int
    blocked_date: date
    start_time: time
    end_time: time
    reason: Optional[str] = None
    created_by: str

    class Config:
        from_attributes = True


class QuoteResponse(BaseModel):
    service_id: int
    price: float
    effective_price: float
    voucher_code: Optional[str] = None


def _parse_time(value: str) -> TimeSlot:
    try:
        return TimeSlot.parse(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid time format. Use HH:MM")


def appointment_response(apt: Appointment, now: Optional[datetime] = None) -> AppointmentResponse:
    now = now or datetime.now()
    starts_at = slot_datetime(apt.appointment_date, apt.appointment_time)
    return AppointmentResponse(
        id=apt.id,
        therapist_id=apt.therapist_id,
        service_id=apt.service_id,
        appointment_date=apt.appointment_date.strftime("%Y-%m-%d"),
        appointment_time=apt.appointment_time.strftime("%H:%M"),
        duration_minutes=apt.duration_minutes,
        status=apt.status,
        client_user_id=apt.client_user_id,
        guest_name=apt.guest_name,
        guest_phone=apt.guest_phone,
        notes=apt.notes,
        voucher_code=apt.voucher_code,
        can_cancel=(
            apt.status in ("pending", "confirmed")
            and can_cancel(starts_at, now, settings.CANCELLATION_WINDOW_HOURS)
        )
    )


# ==================== Schedule ====================

@router.get("/schedule/{therapist_id}/{target_date}", response_model=ScheduleResponse)
async def get_schedule(
    therapist_id: int,
    target_date: date,
    service_id: Optional[int] = Query(None, description="Service whose duration must fit"),
    db: Session = Depends(get_db)
):
    """Grid for a therapist and date with free slots marked"""
    repository = SpaRepository(db)
    repository.get_therapist(therapist_id)

    duration = None
    if service_id:
        duration = repository.get_service(service_id).duration_minutes

    schedule_service = ScheduleService(db, repository)
    grid = schedule_service.get_grid()
    available = set(schedule_service.get_available_slots(therapist_id, target_date, duration))

    return ScheduleResponse(
        date=target_date.strftime("%Y-%m-%d"),
        therapist_id=therapist_id,
        service_id=service_id,
        working_hours={"start": settings.OPENING_TIME, "end": settings.CLOSING_TIME},
        slots=[TimeSlotResponse(time=slot.label, available=slot in available) for slot in grid]
    )


@router.get("/schedule/{therapist_id}/dates/available", response_model=List[str])
async def get_available_dates(
    therapist_id: int,
    service_id: Optional[int] = Query(None),
    db: Session = Depends(get_db)
):
    """Upcoming dates with at least one free slot"""
    repository = SpaRepository(db)
    repository.get_therapist(therapist_id)

    duration = None
    if service_id:
        duration = repository.get_service(service_id).duration_minutes

    dates = ScheduleService(db, repository).get_available_dates(therapist_id, duration)
    return [d.strftime("%Y-%m-%d") for d in dates]


@router.get("/quote", response_model=QuoteResponse)
async def get_quote(
    service_id: int,
    voucher_code: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Price of a service once the voucher is applied"""
    quote = BookingService(db).quote(service_id, voucher_code)
    return QuoteResponse(
        service_id=quote.service_id,
        price=float(quote.price),
        effective_price=float(quote.effective_price),
        voucher_code=quote.voucher.code if quote.voucher else None
    )


# ==================== Appointments ====================

@router.post("/appointments", response_model=BookingResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """Book an appointment, redeeming the voucher if one is given"""
    request = BookingRequest(
        therapist_id=data.therapist_id,
        service_id=data.service_id,
        appointment_date=data.appointment_date,
        start=_parse_time(data.appointment_time),
        client=client_ref(data.user_id, data.guest_name, data.guest_phone),
        actor=data.actor,
        status=data.status if data.actor != Actor.CLIENT else AppointmentStatus.CONFIRMED,
        notes=data.notes,
        voucher_code=data.voucher_code
    )
    result = await BookingService(db, notifier).book_appointment(request)

    return BookingResponse(
        appointment=appointment_response(result.appointment),
        price=float(result.price),
        effective_price=float(result.effective_price)
    )


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return appointment_response(SpaRepository(db).get_appointment(appointment_id))


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: StatusUpdate,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """Change status (staff: any status; clients: cancellation only)"""
    appointment = await BookingService(db, notifier).change_status(
        appointment_id, data.status, data.actor,
        user_id=data.user_id, guest_phone=data.guest_phone
    )
    return appointment_response(appointment)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: ClientCancel,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """Client self-cancellation, only more than 24h ahead"""
    appointment = await BookingService(db, notifier).cancel_by_client(
        appointment_id, user_id=data.user_id, guest_phone=data.guest_phone
    )
    return appointment_response(appointment)


@router.delete("/appointments/{appointment_id}")
async def delete_appointment(
    appointment_id: int,
    actor: Actor = Query(..., description="admin or therapist"),
    db: Session = Depends(get_db)
):
    """Staff-only deletion; voucher redemptions stay in the ledger"""
    BookingService(db).delete_appointment(appointment_id, actor)
    return {"success": True}


@router.post("/appointments/reminders")
async def send_reminders(
    target_date: Optional[date] = Query(None, description="Defaults to tomorrow"),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """Day-before reminders for confirmed appointments (run daily by a scheduler)"""
    sent = await notifier.send_reminders(db, target_date)
    return {"sent": sent}


# ==================== Blocked ranges ====================

@router.get("/blocked-slots/{therapist_id}/{target_date}", response_model=List[BlockedSlotResponse])
async def list_blocked_slots(therapist_id: int, target_date: date, db: Session = Depends(get_db)):
    return SpaRepository(db).list_blocked_ranges(therapist_id, target_date)


@router.post("/blocked-slots", response_model=BlockedSlotResponse, status_code=201)
async def create_blocked_slot(data: BlockedSlotCreate, db: Session = Depends(get_db)):
    """Block a time range for a therapist"""
    blocked = ScheduleService(db).block_range(
        data.therapist_id,
        data.blocked_date,
        _parse_time(data.start_time).to_time(),
        _parse_time(data.end_time).to_time(),
        created_by=data.created_by,
        reason=data.reason
    )
    return blocked


@router.delete("/blocked-slots/{blocked_id}")
async def delete_blocked_slot(blocked_id: int, db: Session = Depends(get_db)):
    ScheduleService(db).unblock_range(blocked_id)
    return {"success": True}
