"""
SQLAlchemy models
"""
from .therapist import Therapist, TherapistService
from .service import Service
from .appointment import Appointment
from .blocked_slot import BlockedSlot
from .voucher import Voucher, VoucherRedemption
from .notification import Notification

__all__ = [
    "Therapist",
    "TherapistService",
    "Service",
    "Appointment",
    "BlockedSlot",
    "Voucher",
    "VoucherRedemption",
    "Notification"
]
