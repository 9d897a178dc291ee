"""Domain Entities - Aggregates"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from uuid import UUID, uuid4
from datetime import date, datetime
from typing import Optional, List
from decimal import Decimal

from domain.enums import (
    ReservationStatus, PaymentStatus, RoomStatus, CleaningStatus, RoomType,
    BookingSource, LoyaltyTier
)
from domain.exceptions import (
    ValidationError, InvalidTransition, CancellationWindowClosed
)
from domain.value_objects import (
    StayPeriod, Occupancy, SeasonalRate, PricingSnapshot, CancellationRecord,
    utc_now
)


class Room(BaseModel):
    """Room entity, owned by the catalog and read by the booking engine"""
    model_config = ConfigDict(from_attributes=True)

    room_id: UUID = Field(default_factory=uuid4)
    room_number: str
    name: str
    room_type: RoomType = RoomType.STANDARD
    max_occupancy: int = Field(ge=1, le=8)
    base_price: Decimal = Field(ge=0)
    seasonal_pricing: List[SeasonalRate] = Field(default_factory=list)

    status: RoomStatus = RoomStatus.AVAILABLE
    is_active: bool = True
    cleaning_status: CleaningStatus = CleaningStatus.CLEAN
    last_cleaning: Optional[datetime] = None

    @model_validator(mode="after")
    def _seasons_do_not_overlap(self) -> "Room":
        seasons = sorted(self.seasonal_pricing, key=lambda s: s.start_date)
        for earlier, later in zip(seasons, seasons[1:]):
            if earlier.overlaps(later):
                raise ValueError(
                    f"Seasonal rates '{earlier.season}' and '{later.season}' overlap"
                )
        return self

    def is_bookable(self) -> bool:
        """Inactive rooms and rooms under maintenance never take bookings"""
        return self.is_active and self.status == RoomStatus.AVAILABLE

    def rate_on(self, day: date) -> Decimal:
        """Nightly rate for a given day; base price unless exactly one season applies"""
        matching = [s for s in self.seasonal_pricing if s.contains(day)]
        if len(matching) == 1:
            return self.base_price * matching[0].multiplier
        return self.base_price

    def mark_occupied(self) -> None:
        self.status = RoomStatus.OCCUPIED

    def release_after_checkout(self, now: datetime) -> None:
        """Room goes back on sale and is flagged for housekeeping"""
        self.status = RoomStatus.AVAILABLE
        self.cleaning_status = CleaningStatus.DIRTY
        self.last_cleaning = now


class Guest(BaseModel):
    """Guest entity with stay statistics and loyalty membership"""
    model_config = ConfigDict(from_attributes=True)

    guest_id: UUID = Field(default_factory=uuid4)
    first_name: str
    last_name: str
    email: str
    phone: str

    total_stays: int = 0
    total_spent: Decimal = Decimal("0")
    last_stay_date: Optional[datetime] = None
    is_vip: bool = False

    loyalty_tier: LoyaltyTier = LoyaltyTier.BRONZE
    loyalty_points: int = 0

    created_at: datetime = Field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def update_contact(self, first_name: str, last_name: str, phone: str) -> None:
        self.first_name = first_name
        self.last_name = last_name
        self.phone = phone

    def record_stay(self, amount: Decimal, now: datetime) -> None:
        """Update stay statistics after a paid booking"""
        self.total_stays += 1
        self.total_spent += amount
        self.last_stay_date = now

        if self.total_stays >= 10 and self.total_spent >= 5000:
            self.is_vip = True

    def add_loyalty_points(self, points: int) -> None:
        self.loyalty_points += points

        if self.loyalty_points >= 10000:
            self.loyalty_tier = LoyaltyTier.PLATINUM
        elif self.loyalty_points >= 5000:
            self.loyalty_tier = LoyaltyTier.GOLD
        elif self.loyalty_points >= 1000:
            self.loyalty_tier = LoyaltyTier.SILVER


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""
    model_config = ConfigDict(from_attributes=True)

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)
    booking_number: str
    confirmation_code: str

    # References to other aggregates
    room_id: UUID
    guest_id: UUID

    # Value Objects
    period: StayPeriod
    occupancy: Occupancy
    pricing: PricingSnapshot

    # Status
    status: ReservationStatus = ReservationStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: Optional[str] = None
    booking_source: BookingSource = BookingSource.DIRECT

    special_requests: Optional[str] = Field(default=None, max_length=1000)
    cancellation: Optional[CancellationRecord] = None

    actual_check_in_time: Optional[datetime] = None
    actual_check_out_time: Optional[datetime] = None
    confirmation_sent: bool = False
    loyalty_points_earned: int = 0

    # Metadata
    created_at: datetime = Field(default_factory=utc_now)
    modified_at: datetime = Field(default_factory=utc_now)
    version: int = 1

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        room: Room,
        guest_id: UUID,
        period: StayPeriod,
        occupancy: Occupancy,
        pricing: PricingSnapshot,
        booking_number: str,
        confirmation_code: str,
        now: datetime,
        special_requests: Optional[str] = None,
        booking_source: BookingSource = BookingSource.DIRECT
    ) -> "Reservation":
        """Create a new Pending reservation with validation"""
        Reservation.validate_request(room, period, occupancy, now)

        return Reservation(
            booking_number=booking_number,
            confirmation_code=confirmation_code,
            room_id=room.room_id,
            guest_id=guest_id,
            period=period,
            occupancy=occupancy,
            pricing=pricing,
            special_requests=special_requests,
            booking_source=booking_source,
            status=ReservationStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            modified_at=now
        )

    @staticmethod
    def validate_request(room: Room, period: StayPeriod, occupancy: Occupancy, now: datetime) -> None:
        """Business rules checked before anything is written"""
        if period.check_in < now:
            raise ValidationError("Check-in date cannot be in the past")

        if occupancy.total > room.max_occupancy:
            raise ValidationError(
                f"Room can accommodate maximum {room.max_occupancy} guests"
            )

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self, payment_reference: Optional[str], now: datetime) -> None:
        """Pending -> Confirmed once payment is secured"""
        if self.status != ReservationStatus.PENDING:
            raise InvalidTransition(
                f"Cannot confirm reservation with status {self.status.value}"
            )

        self.status = ReservationStatus.CONFIRMED
        self.payment_status = PaymentStatus.PAID
        if payment_reference:
            self.payment_reference = payment_reference
        self._touch(now)

    def record_payment_failure(self, now: datetime) -> None:
        """Booking stays Pending; only the payment status changes"""
        if self.status != ReservationStatus.PENDING:
            raise InvalidTransition(
                f"Cannot record a failed payment on a {self.status.value} reservation"
            )
        self.payment_status = PaymentStatus.FAILED
        self._touch(now)

    def record_payment_pending(self, payment_reference: Optional[str], now: datetime) -> None:
        self.payment_reference = payment_reference
        self._touch(now)

    def check_in(self, now: datetime) -> None:
        """Mark guest as checked in"""
        if self.status != ReservationStatus.CONFIRMED:
            raise InvalidTransition("Booking must be confirmed to check in")

        self.status = ReservationStatus.CHECKED_IN
        self.actual_check_in_time = now
        self._touch(now)

    def check_out(self, now: datetime) -> None:
        """Process guest check-out"""
        if self.status != ReservationStatus.CHECKED_IN:
            raise InvalidTransition("Guest must be checked in to check out")

        self.status = ReservationStatus.CHECKED_OUT
        self.actual_check_out_time = now
        self._touch(now)

    def ensure_cancellable(self, now: datetime, cutoff_hours: float) -> None:
        """Guest cancellation is open only for Confirmed bookings outside the cutoff"""
        if self.status != ReservationStatus.CONFIRMED:
            raise CancellationWindowClosed(
                f"Booking cannot be cancelled with status {self.status.value}"
            )

        if self.period.hours_until_check_in(now) <= cutoff_hours:
            raise CancellationWindowClosed(
                f"Booking cannot be cancelled within {cutoff_hours:g} hours of check-in"
            )

    def cancel(
        self,
        reason: Optional[str],
        fee: Decimal,
        refund_amount: Decimal,
        refund_issued: bool,
        now: datetime
    ) -> None:
        """Confirmed -> Cancelled, recording the fee split"""
        if self.status != ReservationStatus.CONFIRMED:
            raise InvalidTransition(
                f"Cannot cancel reservation with status {self.status.value}"
            )

        self.status = ReservationStatus.CANCELLED
        self.cancellation = CancellationRecord(
            reason=reason,
            cancelled_at=now,
            fee=fee,
            refund_amount=refund_amount
        )
        if refund_issued:
            self.payment_status = PaymentStatus.REFUNDED
        self._touch(now)

    def mark_no_show(self, now: datetime) -> None:
        """Mark guest as no-show"""
        if self.status not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
            raise InvalidTransition(
                f"Cannot mark as no-show with status {self.status.value}"
            )

        self.status = ReservationStatus.NO_SHOW
        self._touch(now)

    def abandon(self, reason: str, payment_reference: str, refunded: bool, now: datetime) -> None:
        """Pending -> Cancelled when a captured booking cannot keep its room"""
        if self.status != ReservationStatus.PENDING:
            raise InvalidTransition(
                f"Cannot abandon reservation with status {self.status.value}"
            )

        self.status = ReservationStatus.CANCELLED
        self.payment_reference = payment_reference
        self.payment_status = PaymentStatus.REFUNDED if refunded else PaymentStatus.PAID
        self.cancellation = CancellationRecord(
            reason=reason,
            cancelled_at=now,
            fee=Decimal("0.00"),
            refund_amount=self.pricing.total if refunded else Decimal("0.00")
        )
        self._touch(now)

    # ==================== QUERY METHODS ====================
    def blocks_calendar(self) -> bool:
        return self.status.blocks_calendar

    def conflicts_with(self, room_id: UUID, period: StayPeriod) -> bool:
        return self.room_id == room_id and self.blocks_calendar() and self.period.overlaps(period)

    def get_nights(self) -> int:
        return self.pricing.nights

    def _touch(self, now: datetime) -> None:
        self.modified_at = now
        self.version += 1
