"""
Therapist model
"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class Therapist(Base):
    """Therapist working at the spa"""

    __tablename__ = "therapists"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)
    user_id = Column(String(64), nullable=True, unique=True)  # identity provider id
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<Therapist {self.name}>"


class TherapistService(Base):
    """Which services a therapist performs"""

    __tablename__ = "therapist_services"

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("therapist_id", "service_id", name="unique_therapist_service"),
    )
