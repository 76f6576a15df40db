"""
API router for gift vouchers
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Union

from ..database import get_db
from ..services.voucher_service import VoucherService
from ..services.vouchers import Money, UserOwner, VoucherSnapshot, VoucherType

router = APIRouter(prefix="/api/vouchers", tags=["vouchers"])


# ==================== Pydantic Schemas ====================

class VoucherCreate(BaseModel):
    voucher_type: VoucherType
    value: Optional[Decimal] = Field(None, gt=0)
    sessions: Optional[int] = Field(None, gt=0)
    service_id: Optional[int] = None
    user_id: Optional[str] = None
    purchaser_name: Optional[str] = Field(None, max_length=100)
    purchaser_email: Optional[str] = Field(None, max_length=100)
    purchaser_phone: Optional[str] = Field(None, max_length=20)
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


class VoucherResponse(BaseModel):
    id: int
    code: str
    voucher_type: str
    status: str
    service_id: Optional[int] = None
    original_value: Optional[float] = None
    remaining_value: Optional[float] = None
    original_sessions: Optional[int] = None
    remaining_sessions: Optional[int] = None
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class VoucherVerify(BaseModel):
    service_id: Optional[int] = None
    user_id: Optional[str] = None


class VoucherRedeem(BaseModel):
    amount: Union[int, Decimal]  # money for single vouchers, sessions for packages
    appointment_id: Optional[int] = None
    redeemed_by: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class RedemptionResponse(BaseModel):
    id: int
    voucher_id: int
    voucher_code: str
    appointment_id: Optional[int] = None
    redeemed_value: Optional[float] = None
    redeemed_sessions: Optional[int] = None
    redeemed_by: Optional[str] = None
    notes: Optional[str] = None
    redemption_date: datetime

    class Config:
        from_attributes = True


class RedeemResponse(BaseModel):
    voucher: VoucherResponse
    redemption: RedemptionResponse


def voucher_response(voucher: VoucherSnapshot) -> VoucherResponse:
    data = {
        "id": voucher.id,
        "code": voucher.code,
        "voucher_type": voucher.type.value,
        "status": voucher.status.value,
        "service_id": voucher.service_id,
        "user_id": voucher.owner.user_id if isinstance(voucher.owner, UserOwner) else None,
        "expires_at": voucher.expires_at,
    }
    if isinstance(voucher.quantity, Money):
        data["original_value"] = float(voucher.quantity.original)
        data["remaining_value"] = float(voucher.quantity.remaining)
    else:
        data["original_sessions"] = voucher.quantity.original
        data["remaining_sessions"] = voucher.quantity.remaining
    return VoucherResponse(**data)


# ==================== API Endpoints ====================

@router.post("", response_model=VoucherResponse, status_code=201)
async def create_voucher(data: VoucherCreate, db: Session = Depends(get_db)):
    """Issue a voucher (staff or purchase flow)"""
    voucher = VoucherService(db).issue_voucher(**data.model_dump())
    return voucher_response(VoucherSnapshot.from_model(voucher))


@router.get("/{code}", response_model=VoucherResponse)
async def get_voucher(code: str, db: Session = Depends(get_db)):
    return voucher_response(VoucherService(db).get_voucher(code))


@router.post("/{code}/verify", response_model=VoucherResponse)
async def verify_voucher(code: str, data: VoucherVerify, db: Session = Depends(get_db)):
    """Check a voucher before booking; binds a guest voucher to the presenting user"""
    voucher = VoucherService(db).verify_voucher(code, service_id=data.service_id, user_id=data.user_id)
    return voucher_response(voucher)


@router.post("/{code}/redeem", response_model=RedeemResponse)
async def redeem_voucher(code: str, data: VoucherRedeem, db: Session = Depends(get_db)):
    """Manual redemption by staff"""
    redemption, stored = VoucherService(db).redeem_voucher(
        code,
        data.amount,
        appointment_id=data.appointment_id,
        redeemed_by=data.redeemed_by,
        notes=data.notes,
        expected_version=data.expected_version
    )
    return RedeemResponse(
        voucher=voucher_response(redemption.updated_voucher),
        redemption=RedemptionResponse.model_validate(stored)
    )


@router.post("/{code}/cancel", response_model=VoucherResponse)
async def cancel_voucher(code: str, db: Session = Depends(get_db)):
    return voucher_response(VoucherService(db).cancel_voucher(code))


@router.get("/{code}/redemptions", response_model=List[RedemptionResponse])
async def list_redemptions(code: str, db: Session = Depends(get_db)):
    return VoucherService(db).list_redemptions(code)
