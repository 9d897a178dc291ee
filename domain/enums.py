"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHECKED_IN = "Checked In"
    CHECKED_OUT = "Checked Out"
    CANCELLED = "Cancelled"
    NO_SHOW = "No Show"

    @property
    def blocks_calendar(self) -> bool:
        """Statuses that still occupy the room's calendar"""
        return self in BLOCKING_STATUSES

    @property
    def is_revenue(self) -> bool:
        return self in REVENUE_STATUSES


BLOCKING_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN})

REVENUE_STATUSES = frozenset({
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.CHECKED_OUT,
})


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    PARTIALLY_PAID = "Partially Paid"
    REFUNDED = "Refunded"
    FAILED = "Failed"


class RoomStatus(str, Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    OUT_OF_ORDER = "Out of Order"
    MAINTENANCE = "Maintenance"


class CleaningStatus(str, Enum):
    CLEAN = "Clean"
    DIRTY = "Dirty"
    IN_PROGRESS = "In Progress"
    INSPECTED = "Inspected"


class RoomType(str, Enum):
    STANDARD = "Standard"
    DELUXE = "Deluxe"
    SUITE = "Suite"
    EXECUTIVE_SUITE = "Executive Suite"
    PRESIDENTIAL_SUITE = "Presidential Suite"


class BookingSource(str, Enum):
    DIRECT = "Direct"
    BOOKING_COM = "Booking.com"
    EXPEDIA = "Expedia"
    TRIP_COM = "Trip.com"
    PHONE = "Phone"
    WALK_IN = "Walk-in"
    TRAVEL_AGENT = "Travel Agent"


class LoyaltyTier(str, Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


class PaymentOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PROCESSING = "processing"
    DECLINED = "declined"


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    GUEST = "guest"
