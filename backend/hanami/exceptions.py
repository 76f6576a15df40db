"""
Domain errors for scheduling and the voucher ledger

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. Nothing here is retried automatically: the caller decides.
"""


class BookingError(Exception):
    """Base class for every scheduling / voucher failure"""

    code = "booking_error"
    http_status = 400
    default_message = "Booking request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidConfiguration(BookingError):
    code = "invalid_configuration"
    http_status = 500
    default_message = "Invalid booking grid configuration"


class InvalidRequest(BookingError):
    code = "invalid_request"
    http_status = 400
    default_message = "Invalid request"


class NotFound(BookingError):
    code = "not_found"
    http_status = 404
    default_message = "Record not found"


class SlotNoLongerAvailable(BookingError):
    code = "slot_no_longer_available"
    http_status = 409
    default_message = "The selected time is no longer available, refresh availability and try again"


class VoucherNotFound(BookingError):
    code = "voucher_not_found"
    http_status = 404
    default_message = "Voucher not found"


class VoucherInactive(BookingError):
    code = "voucher_inactive"
    http_status = 422
    default_message = "Voucher is not active"


class VoucherExpired(BookingError):
    code = "voucher_expired"
    http_status = 422
    default_message = "Voucher has expired"


class VoucherExhausted(BookingError):
    code = "voucher_exhausted"
    http_status = 422
    default_message = "Voucher has no remaining value"


class ServiceMismatch(BookingError):
    code = "service_mismatch"
    http_status = 422
    default_message = "Voucher is not valid for this service"


class InsufficientBalance(BookingError):
    code = "insufficient_balance"
    http_status = 422
    default_message = "Amount exceeds the voucher's remaining value"


class InsufficientSessions(BookingError):
    code = "insufficient_sessions"
    http_status = 422
    default_message = "Sessions exceed the package's remaining sessions"


class ConcurrentRedemptionConflict(BookingError):
    code = "concurrent_redemption_conflict"
    http_status = 409
    default_message = "Voucher was changed by another redemption, verify it again and retry"


class CancellationWindowClosed(BookingError):
    code = "cancellation_window_closed"
    http_status = 403
    default_message = (
        "Appointments can only be cancelled online more than 24 hours in advance. "
        "Please contact the salon directly."
    )
