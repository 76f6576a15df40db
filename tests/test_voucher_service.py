"""Tests for VoucherService."""
from datetime import datetime
from decimal import Decimal

import pytest

from hanami.exceptions import (
    ConcurrentRedemptionConflict,
    InsufficientSessions,
    InvalidRequest,
    VoucherExpired,
    VoucherInactive,
    VoucherNotFound,
)
from hanami.models import Voucher
from hanami.services.voucher_service import VoucherService
from hanami.services.vouchers import VoucherCodeGenerator, VoucherStatus, VoucherType

NOW = datetime(2030, 5, 1, 12, 0)


@pytest.fixture
def vouchers(db):
    return VoucherService(db, code_generator=VoucherCodeGenerator(prefix="TST", length=6))


class TestIssueVoucher:
    """Test issue_voucher."""

    def test_single(self, vouchers):
        """Single vouchers start with their full value."""
        voucher = vouchers.issue_voucher(VoucherType.SINGLE, value=Decimal("200"), purchaser_name="Ola")

        assert voucher.code.startswith("TST-")
        assert voucher.remaining_value == Decimal("200.00")
        assert voucher.status == "active"
        assert voucher.version == 1

    def test_package(self, vouchers, catalogue):
        """Packages start with all their sessions, optionally tied to a service."""
        voucher = vouchers.issue_voucher(
            "package", sessions=5, service_id=catalogue["massage"].id, user_id="user-1"
        )

        assert voucher.remaining_sessions == 5
        assert voucher.service_id == catalogue["massage"].id

    @pytest.mark.parametrize("kwargs", [
        {"voucher_type": "single"},
        {"voucher_type": "single", "value": 0},
        {"voucher_type": "single", "value": 100, "sessions": 2},
        {"voucher_type": "package", "sessions": 0},
        {"voucher_type": "package", "sessions": 3, "value": 100},
        {"voucher_type": "single", "value": 100, "user_id": "user-1", "purchaser_name": "Ola"},
    ])
    def test_invalid(self, vouchers, kwargs):
        """Inconsistent vouchers are refused."""
        with pytest.raises(InvalidRequest):
            vouchers.issue_voucher(**kwargs)


class TestRedeemVoucher:
    """Test redeem_voucher and reading vouchers."""

    def test_single_full_redemption(self, db, vouchers):
        """Redeeming 150 of 150 leaves 0 and marks it redeemed."""
        code = vouchers.issue_voucher("single", value=150).code

        redemption, stored = vouchers.redeem_voucher(code, 150, redeemed_by="staff-1", now=NOW)

        assert redemption.updated_voucher.remaining == Decimal("0")
        assert redemption.updated_voucher.status == VoucherStatus.REDEEMED
        assert stored.redeemed_value == Decimal("150.00")
        assert vouchers.get_voucher(code, NOW).status == VoucherStatus.REDEEMED

    def test_package_second_redemption_fails(self, vouchers):
        """A one-session package cannot be redeemed twice."""
        code = vouchers.issue_voucher("package", sessions=1).code

        vouchers.redeem_voucher(code, 1, now=NOW)

        with pytest.raises(InsufficientSessions):
            vouchers.redeem_voucher(code, 1, now=NOW)
        assert len(vouchers.list_redemptions(code)) == 1

    def test_stale_expected_version(self, vouchers):
        """A redemption pinned to an outdated version is refused."""
        code = vouchers.issue_voucher("single", value=200).code
        verified = vouchers.verify_voucher(code, NOW)
        vouchers.redeem_voucher(code, 50, now=NOW)

        with pytest.raises(ConcurrentRedemptionConflict):
            vouchers.redeem_voucher(code, 50, now=NOW, expected_version=verified.version)

        assert vouchers.get_voucher(code, NOW).remaining == Decimal("150.00")

    def test_redemptions_listed_in_order(self, vouchers):
        """The audit trail keeps every redemption."""
        code = vouchers.issue_voucher("single", value=100).code
        vouchers.redeem_voucher(code, 30, now=datetime(2030, 5, 1, 10, 0))
        vouchers.redeem_voucher(code, 20, now=datetime(2030, 5, 2, 10, 0))

        values = [r.redeemed_value for r in vouchers.list_redemptions(code)]

        assert values == [Decimal("30.00"), Decimal("20.00")]

    def test_unknown_code(self, vouchers):
        """Unknown codes raise VoucherNotFound."""
        with pytest.raises(VoucherNotFound):
            vouchers.redeem_voucher("TST-NOPE", 10, now=NOW)


class TestVerifyVoucher:
    """Test verify_voucher, binding and lazy expiry."""

    def test_guest_voucher_bound_once(self, db, vouchers):
        """The first registered user presenting a guest voucher keeps it."""
        code = vouchers.issue_voucher("single", value=100, purchaser_name="Ola").code

        assert vouchers.verify_voucher(code, NOW, user_id="user-1").owner_user_id == "user-1"
        assert vouchers.verify_voucher(code, NOW, user_id="user-2").owner_user_id == "user-1"
        assert db.query(Voucher).one().user_id == "user-1"

    def test_lazy_expiry_persisted(self, db, vouchers):
        """Reading past expires_at stores status expired."""
        code = vouchers.issue_voucher("single", value=100, expires_at=datetime(2030, 4, 1)).code

        with pytest.raises(VoucherExpired):
            vouchers.verify_voucher(code, NOW)

        assert db.query(Voucher).one().status == "expired"

    def test_cancelled(self, vouchers):
        """Cancelled vouchers are inactive."""
        code = vouchers.issue_voucher("single", value=100).code
        vouchers.cancel_voucher(code)

        with pytest.raises(VoucherInactive):
            vouchers.verify_voucher(code, NOW)
