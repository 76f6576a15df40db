"""
Blocked time range model
"""
from sqlalchemy import Column, Integer, ForeignKey, Date, Time, String, TIMESTAMP, CheckConstraint
from sqlalchemy.sql import func
from ..database import Base


class BlockedSlot(Base):
    """Therapist unavailability (break, training, day off)"""

    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String(200), nullable=True)
    created_by = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="blocked_slot_range_order"),
    )

    def __repr__(self):
        return f"<BlockedSlot {self.blocked_date} {self.start_time}-{self.end_time} - {self.reason}>"
