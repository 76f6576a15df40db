"""
Appointment model
"""
from sqlalchemy import (
    Column, Integer, ForeignKey, Date, Time, String, Text, Boolean, TIMESTAMP, Index, CheckConstraint, text
)
from sqlalchemy.sql import func
from ..database import Base


class Appointment(Base):
    """Scheduled session with a therapist"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="confirmed")  # pending, confirmed, completed, cancelled
    # Either a registered user or a guest, never both
    client_user_id = Column(String(64), nullable=True, index=True)
    guest_name = Column(String(100), nullable=True)
    guest_phone = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    voucher_code = Column(String(32), nullable=True)
    notification_sent = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # One live appointment per therapist and start time
        Index(
            "unique_active_appointment_slot",
            "therapist_id", "appointment_date", "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        CheckConstraint(
            "(client_user_id IS NOT NULL AND guest_name IS NULL AND guest_phone IS NULL)"
            " OR (client_user_id IS NULL AND guest_name IS NOT NULL AND guest_phone IS NOT NULL)",
            name="appointment_client_xor_guest",
        ),
    )

    @property
    def is_guest(self) -> bool:
        return self.client_user_id is None

    def __repr__(self):
        return f"<Appointment {self.appointment_date} {self.appointment_time} (Status: {self.status})>"
