"""
Gift voucher and redemption models
"""
from sqlalchemy import Column, Integer, ForeignKey, String, Numeric, Text, TIMESTAMP, DateTime
from sqlalchemy.sql import func
from ..database import Base


class Voucher(Base):
    """Gift voucher: a cash balance (single) or a session counter (package)"""

    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, nullable=False, index=True)
    voucher_type = Column(String(20), nullable=False)  # single, package
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)  # None = any service
    original_value = Column(Numeric(10, 2), nullable=True)
    remaining_value = Column(Numeric(10, 2), nullable=True)
    original_sessions = Column(Integer, nullable=True)
    remaining_sessions = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active, redeemed, expired, cancelled
    expires_at = Column(DateTime, nullable=True)
    # Owner: a registered user, or the guest purchaser's contact details
    user_id = Column(String(64), nullable=True, index=True)
    purchaser_name = Column(String(100), nullable=True)
    purchaser_email = Column(String(100), nullable=True)
    purchaser_phone = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)
    # Bumped on every balance/status write, used for compare-and-swap
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Voucher {self.code} {self.voucher_type} ({self.status})>"


class VoucherRedemption(Base):
    """Audit record of one redemption, never updated"""

    __tablename__ = "voucher_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), nullable=False, index=True)
    voucher_code = Column(String(32), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    redeemed_value = Column(Numeric(10, 2), nullable=True)
    redeemed_sessions = Column(Integer, nullable=True)
    redeemed_by = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    redemption_date = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<VoucherRedemption {self.voucher_code} value={self.redeemed_value} sessions={self.redeemed_sessions}>"
