"""
Voucher ledger

Pure rules over voucher snapshots: verification, redemption, lazy expiry,
guest-to-user binding and price discounts. Persisting the results
atomically is VoucherService / SpaRepository's job.
"""
import logging
import secrets
import string
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional, Union

from ..exceptions import (
    InvalidConfiguration,
    InvalidRequest,
    VoucherNotFound,
    VoucherInactive,
    VoucherExpired,
    VoucherExhausted,
    ServiceMismatch,
    InsufficientBalance,
    InsufficientSessions,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


class VoucherType(str, Enum):
    SINGLE = "single"
    PACKAGE = "package"


class VoucherStatus(str, Enum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# ==================== Quantities ====================

@dataclass(frozen=True)
class Money:
    """Cash balance of a single voucher"""
    original: Decimal
    remaining: Decimal

    def __post_init__(self):
        if self.original < 0 or self.remaining < 0 or self.remaining > self.original:
            raise ValueError(f"Invalid voucher balance {self.remaining}/{self.original}")


@dataclass(frozen=True)
class Sessions:
    """Session counter of a package voucher"""
    original: int
    remaining: int

    def __post_init__(self):
        if self.original < 0 or self.remaining < 0 or self.remaining > self.original:
            raise ValueError(f"Invalid package sessions {self.remaining}/{self.original}")


VoucherQuantity = Union[Money, Sessions]


# ==================== Owners ====================

@dataclass(frozen=True)
class UserOwner:
    user_id: str


@dataclass(frozen=True)
class GuestPurchaser:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


VoucherOwner = Union[UserOwner, GuestPurchaser]


@dataclass(frozen=True)
class VoucherSnapshot:
    """Copy of a stored voucher the ledger rules operate on"""

    id: Optional[int]
    code: str
    quantity: VoucherQuantity
    status: VoucherStatus = VoucherStatus.ACTIVE
    service_id: Optional[int] = None
    owner: VoucherOwner = GuestPurchaser()
    expires_at: Optional[datetime] = None
    version: int = 1

    @property
    def type(self) -> VoucherType:
        return VoucherType.SINGLE if isinstance(self.quantity, Money) else VoucherType.PACKAGE

    @property
    def remaining(self):
        return self.quantity.remaining

    @property
    def owner_user_id(self) -> Optional[str]:
        return self.owner.user_id if isinstance(self.owner, UserOwner) else None

    @classmethod
    def from_model(cls, voucher) -> "VoucherSnapshot":
        if voucher.voucher_type == VoucherType.SINGLE.value:
            quantity = Money(
                original=Decimal(voucher.original_value or 0),
                remaining=Decimal(voucher.remaining_value or 0),
            )
        else:
            quantity = Sessions(
                original=int(voucher.original_sessions or 0),
                remaining=int(voucher.remaining_sessions or 0),
            )

        if voucher.user_id:
            owner = UserOwner(voucher.user_id)
        else:
            owner = GuestPurchaser(voucher.purchaser_name, voucher.purchaser_email, voucher.purchaser_phone)

        return cls(
            id=voucher.id,
            code=voucher.code,
            quantity=quantity,
            status=VoucherStatus(voucher.status),
            service_id=voucher.service_id,
            owner=owner,
            expires_at=voucher.expires_at,
            version=voucher.version,
        )


@dataclass(frozen=True)
class RedemptionRecord:
    """Immutable audit entry for one redemption"""

    voucher_id: Optional[int]
    voucher_code: str
    redemption_date: datetime
    redeemed_value: Optional[Decimal] = None
    redeemed_sessions: Optional[int] = None
    appointment_id: Optional[int] = None
    redeemed_by: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Redemption:
    updated_voucher: VoucherSnapshot
    record: RedemptionRecord


# ==================== Ledger rules ====================

def _is_expired(voucher: VoucherSnapshot, now: datetime) -> bool:
    return voucher.expires_at is not None and voucher.expires_at < now


def expire_if_due(voucher: VoucherSnapshot, now: datetime) -> VoucherSnapshot:
    """Lazy expiry: an active voucher read after expires_at becomes expired"""
    if voucher.status == VoucherStatus.ACTIVE and _is_expired(voucher, now):
        logger.info(f"Voucher {voucher.code} expired at {voucher.expires_at}")
        return replace(voucher, status=VoucherStatus.EXPIRED, version=voucher.version + 1)
    return voucher


def verify(voucher: Optional[VoucherSnapshot], now: datetime,
           target_service_id: Optional[int] = None) -> VoucherSnapshot:
    """
    Check that a voucher can be used now, optionally for a given service

    Returns:
        VoucherSnapshot: the voucher, unchanged

    Raises:
        VoucherNotFound, VoucherInactive, VoucherExpired, VoucherExhausted, ServiceMismatch
    """
    if voucher is None:
        raise VoucherNotFound()

    # already flipped by a lazy expiry
    if voucher.status == VoucherStatus.EXPIRED:
        raise VoucherExpired(f"Voucher {voucher.code} has expired")

    if voucher.status != VoucherStatus.ACTIVE:
        raise VoucherInactive(f"Voucher {voucher.code} is {voucher.status.value}")

    if _is_expired(voucher, now):
        raise VoucherExpired(f"Voucher {voucher.code} expired on {voucher.expires_at:%Y-%m-%d}")

    if voucher.remaining <= 0:
        raise VoucherExhausted(f"Voucher {voucher.code} has nothing left to redeem")

    if (
        voucher.service_id is not None
        and target_service_id is not None
        and voucher.service_id != target_service_id
    ):
        raise ServiceMismatch(f"Voucher {voucher.code} is not valid for this service")

    return voucher


def _money_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidRequest("Redeemed amount must be greater than zero")
    if value != value.quantize(CENT):
        raise InvalidRequest(f"Amount {value} has more than two decimal places")
    return value.quantize(CENT)


def _session_count(amount) -> int:
    if isinstance(amount, bool):
        raise InvalidRequest(f"Invalid session count: {amount!r}")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Invalid session count: {amount!r}")
    if not value.is_finite() or value != value.to_integral_value() or value <= 0:
        raise InvalidRequest("Redeemed sessions must be a positive whole number")
    return int(value)


def redeem(
    voucher: VoucherSnapshot,
    amount,
    appointment_id: Optional[int] = None,
    redeemed_by: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Redemption:
    """
    Apply one redemption to a voucher

    amount is money for single vouchers and a session count for packages.
    The remaining quantity never goes below zero; reaching zero marks the
    voucher as redeemed.

    Raises:
        InvalidRequest: non-positive amount, fractional sessions
        InsufficientBalance / InsufficientSessions: amount above what is left
        VoucherInactive: voucher not active
        VoucherExpired: expires_at already passed
    """
    now = now or datetime.now()

    if isinstance(voucher.quantity, Money):
        value = _money_amount(amount)
        if value > voucher.quantity.remaining:
            raise InsufficientBalance(
                f"Amount {value} exceeds the remaining value {voucher.quantity.remaining} of voucher {voucher.code}"
            )
        new_remaining = max(ZERO, voucher.quantity.remaining - value)
        quantity = Money(voucher.quantity.original, new_remaining)
        record_value, record_sessions = value, None
    else:
        sessions = _session_count(amount)
        if sessions > voucher.quantity.remaining:
            raise InsufficientSessions(
                f"{sessions} sessions exceed the {voucher.quantity.remaining} left on voucher {voucher.code}"
            )
        new_remaining = max(0, voucher.quantity.remaining - sessions)
        quantity = Sessions(voucher.quantity.original, new_remaining)
        record_value, record_sessions = None, sessions

    if voucher.status != VoucherStatus.ACTIVE:
        raise VoucherInactive(f"Voucher {voucher.code} is {voucher.status.value}")
    if _is_expired(voucher, now):
        raise VoucherExpired(f"Voucher {voucher.code} expired on {voucher.expires_at:%Y-%m-%d}")

    status = VoucherStatus.REDEEMED if new_remaining <= 0 else VoucherStatus.ACTIVE
    updated = replace(voucher, quantity=quantity, status=status, version=voucher.version + 1)

    record = RedemptionRecord(
        voucher_id=voucher.id,
        voucher_code=voucher.code,
        redemption_date=now,
        redeemed_value=record_value,
        redeemed_sessions=record_sessions,
        appointment_id=appointment_id,
        redeemed_by=redeemed_by,
        notes=notes,
    )
    return Redemption(updated_voucher=updated, record=record)


def bind_owner(voucher: VoucherSnapshot, user_id: Optional[str]) -> VoucherSnapshot:
    """
    Assign a guest-purchased voucher to the registered user presenting it

    One-way and one-time: a voucher that already has an owner user is
    returned unchanged, whoever presents it.
    """
    if not user_id or isinstance(voucher.owner, UserOwner):
        return voucher
    logger.info(f"Voucher {voucher.code} assigned to user {user_id}")
    return replace(voucher, owner=UserOwner(user_id), version=voucher.version + 1)


def effective_price(price, voucher: Optional[VoucherSnapshot]) -> Decimal:
    """
    Price left to pay once the voucher is applied

    single: max(0, price - min(remaining value, price))
    package: 0 while sessions remain, otherwise the full price
    """
    price = Decimal(str(price))
    if voucher is None:
        return price

    if isinstance(voucher.quantity, Money):
        discount = min(voucher.quantity.remaining, price)
        return max(ZERO, price - discount)

    if voucher.quantity.remaining > 0:
        return ZERO
    return price


def booking_amount(voucher: VoucherSnapshot, price):
    """What a booking redeems: the covered part of the price, or one session"""
    if isinstance(voucher.quantity, Money):
        return min(voucher.quantity.remaining, Decimal(str(price)))
    return 1


# ==================== Codes ====================

class VoucherCodeGenerator:
    """Random voucher codes, retried until unused in the store"""

    ALPHABET = string.ascii_uppercase + string.digits

    def __init__(self, prefix: str = "HNM", length: int = 8, attempts: int = 10):
        if length <= 0 or attempts <= 0:
            raise InvalidConfiguration("Voucher code length and attempts must be positive")
        self.prefix = prefix
        self.length = length
        self.attempts = attempts

    def candidate(self) -> str:
        body = "".join(secrets.choice(self.ALPHABET) for _ in range(self.length))
        return f"{self.prefix}-{body}" if self.prefix else body

    def generate(self, exists: Callable[[str], bool]) -> str:
        """
        Return a code for which exists(code) is False

        Raises:
            InvalidConfiguration: every attempt collided (code space too small)
        """
        for _ in range(self.attempts):
            code = self.candidate()
            if not exists(code):
                return code
            logger.warning(f"Voucher code collision on {code}, retrying")
        raise InvalidConfiguration(
            f"Could not generate a unique voucher code in {self.attempts} attempts"
        )
