"""Domain Exceptions"""
from decimal import Decimal
from typing import Optional


class BookingError(Exception):
    """Base class for every error raised by the booking engine"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError, ValueError):
    """Malformed or missing input, raised before storage is touched"""


class NotFound(BookingError):
    """Room, guest or reservation does not exist"""


class Conflict(BookingError):
    """Availability or uniqueness race; the caller may retry"""


class InvalidTransition(BookingError):
    """A lifecycle guard failed"""


class CancellationWindowClosed(BookingError):
    """Too close to check-in (or wrong status) for a guest cancellation"""


class PaymentFailed(BookingError):
    """The payment processor declined, errored or timed out"""

    def __init__(
        self,
        message: str,
        amount: Decimal,
        reason: Optional[str] = None,
        booking_number: Optional[str] = None
    ):
        super().__init__(message)
        self.amount = amount
        self.reason = reason
        self.booking_number = booking_number


class RefundFailed(BookingError):
    """The refund could not be issued; the cancellation was not recorded"""

    def __init__(self, message: str, amount: Decimal, reason: Optional[str] = None):
        super().__init__(message)
        self.amount = amount
        self.reason = reason


class NotAuthenticated(BookingError):
    """Operation needs an authenticated caller"""


class InternalError(BookingError):
    """Storage or infrastructure fault"""


class DuplicateKeyError(InternalError):
    """Raised by a repository when a unique field is already taken"""

    def __init__(self, field: str, value: str):
        super().__init__(f"Duplicate value for {field}: {value}")
        self.field = field
        self.value = value


class OverlapError(InternalError):
    """Raised by a repository when a write would break the room exclusion constraint"""
