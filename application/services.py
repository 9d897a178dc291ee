"""Application Services - Business use cases"""
import asyncio
import logging
import math
import secrets
import string
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ValidationError as SchemaValidationError

from domain.auth import User
from domain.cancellation import quote_cancellation
from domain.entities import Reservation, Room, Guest
from domain.enums import (
    ReservationStatus, PaymentStatus, PaymentOutcomeStatus, RoomType, RoomStatus, BookingSource
)
from domain.exceptions import (
    ValidationError, NotFound, Conflict, InvalidTransition, PaymentFailed,
    RefundFailed, NotAuthenticated, DuplicateKeyError, OverlapError
)
from domain.gateways import PaymentGateway, NotificationSender, PaymentOutcome
from domain.pricing import PricingEngine, round_money
from domain.repositories import (
    RoomRepository, GuestRepository, ReservationRepository, ReservationQuery,
    SORTABLE_FIELDS
)
from domain.value_objects import (
    StayPeriod, Occupancy, PricingSnapshot, GuestInfo, SeasonalRate, ensure_utc, utc_now
)
from infrastructure.locks import LockRegistry

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Room is not available for the selected dates"
LOST_ROOM_REASON = "Room was booked by another guest during payment"
CONFIRMATION_CODE_ALPHABET = string.ascii_uppercase + string.digits
CONFIRMATION_CODE_LENGTH = 8


def _validation_message(exc: SchemaValidationError) -> str:
    message = exc.errors()[0]["msg"]
    return message.removeprefix("Value error, ")


def build_period(check_in: datetime, check_out: datetime) -> StayPeriod:
    """Turn raw dates into a StayPeriod, reporting bad input as ValidationError"""
    try:
        return StayPeriod(check_in=check_in, check_out=check_out)
    except SchemaValidationError as e:
        raise ValidationError(_validation_message(e)) from e


def generate_booking_number(prefix: str, now: datetime) -> str:
    """<prefix><year><6 random digits>"""
    return f"{prefix}{now.year}{100000 + secrets.randbelow(900000)}"


def generate_confirmation_code() -> str:
    return "".join(
        secrets.choice(CONFIRMATION_CODE_ALPHABET) for _ in range(CONFIRMATION_CODE_LENGTH)
    )


# ============================================================================
# RESULT MODELS
# ============================================================================

class AvailabilityQuote(BaseModel):
    room: Room
    period: StayPeriod
    available: bool
    pricing: PricingSnapshot


class RoomTypeAvailability(BaseModel):
    room_type: RoomType
    count: int
    min_price: Decimal
    max_price: Decimal
    average_price: Decimal
    rooms: List[Room]


class CancellationResult(BaseModel):
    booking_number: str
    cancellation_fee: Decimal
    refund_amount: Decimal
    refund_issued: bool
    status: ReservationStatus


class BookingPage(BaseModel):
    bookings: List[Reservation]
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool


# ============================================================================
# ROOM CATALOG
# ============================================================================

class RoomCatalogService:
    """Thin create/read surface over the room catalog"""

    def __init__(self, repository: RoomRepository):
        self.repository = repository

    async def create_room(
        self,
        room_number: str,
        name: str,
        room_type: RoomType,
        max_occupancy: int,
        base_price: Decimal,
        seasonal_pricing: Optional[List[dict]] = None,
        status: RoomStatus = RoomStatus.AVAILABLE,
        is_active: bool = True
    ) -> Room:
        try:
            room = Room(
                room_number=room_number,
                name=name,
                room_type=room_type,
                max_occupancy=max_occupancy,
                base_price=base_price,
                seasonal_pricing=[SeasonalRate(**s) for s in seasonal_pricing or []],
                status=status,
                is_active=is_active
            )
        except SchemaValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        try:
            return await self.repository.save(room)
        except DuplicateKeyError as e:
            raise Conflict(f"Room number {room_number} already exists") from e

    async def get_room(self, room_id: UUID) -> Room:
        room = await self.repository.find_by_id(room_id)
        if not room:
            raise NotFound("Room not found")
        return room

    async def list_rooms(self, room_type: Optional[RoomType] = None, active_only: bool = True) -> List[Room]:
        rooms = await self.repository.find_all()
        if active_only:
            rooms = [r for r in rooms if r.is_active]
        if room_type:
            rooms = [r for r in rooms if r.room_type == room_type]
        return sorted(rooms, key=lambda r: r.room_number)

    async def set_room_status(self, room_id: UUID, status: RoomStatus) -> Room:
        room = await self.get_room(room_id)
        room.status = status
        return await self.repository.update(room)


# ============================================================================
# AVAILABILITY
# ============================================================================

class AvailabilityService:
    """Answers whether rooms are free for a stay"""

    def __init__(
        self,
        room_repository: RoomRepository,
        reservation_repository: ReservationRepository,
        pricing: PricingEngine,
        clock: Callable[[], datetime] = utc_now
    ):
        self.room_repository = room_repository
        self.reservation_repository = reservation_repository
        self.pricing = pricing
        self.clock = clock

    async def is_available(self, room_id: UUID, check_in: datetime, check_out: datetime) -> bool:
        """Check a single room for [check_in, check_out)"""
        period = build_period(check_in, check_out)
        room = await self.room_repository.find_by_id(room_id)
        if not room:
            raise NotFound("Room not found")
        return await self.room_is_free(room, period)

    async def room_is_free(self, room: Room, period: StayPeriod, exclude_id: Optional[UUID] = None) -> bool:
        if not room.is_bookable():
            return False
        return not await self.has_conflict(room.room_id, period, exclude_id)

    async def has_conflict(self, room_id: UUID, period: StayPeriod, exclude_id: Optional[UUID] = None) -> bool:
        conflicts = await self.reservation_repository.find_conflicting(room_id, period, exclude_id)
        return bool(conflicts)

    async def find_available(
        self,
        check_in: datetime,
        check_out: datetime,
        min_capacity: int = 1,
        room_type: Optional[RoomType] = None
    ) -> List[Room]:
        """Bookable rooms with enough capacity and no blocking reservation in range"""
        period = build_period(check_in, check_out)
        if min_capacity < 1:
            raise ValidationError("Number of guests must be at least 1")

        rooms = await self.room_repository.find_all()
        blocked = await self.reservation_repository.find_blocked_room_ids(period)
        available = [
            room for room in rooms
            if room.is_bookable()
            and room.max_occupancy >= min_capacity
            and (room_type is None or room.room_type == room_type)
            and room.room_id not in blocked
        ]
        return sorted(available, key=lambda r: r.room_number)

    async def find_available_types(
        self,
        check_in: Optional[datetime] = None,
        check_out: Optional[datetime] = None,
        guests: int = 1
    ) -> List[RoomTypeAvailability]:
        """
        Available rooms grouped by room type, cheapest type first.
        Without dates only the room's own status and capacity are considered.
        """
        if guests < 1:
            raise ValidationError("Number of guests must be at least 1")
        if (check_in is None) != (check_out is None):
            raise ValidationError("Both check-in and check-out dates are required")

        if check_in is not None:
            rooms = await self.find_available(check_in, check_out, min_capacity=guests)
        else:
            rooms = [
                room for room in await self.room_repository.find_all()
                if room.is_bookable() and room.max_occupancy >= guests
            ]

        by_type: Dict[RoomType, List[Room]] = defaultdict(list)
        for room in rooms:
            by_type[room.room_type].append(room)

        summaries = []
        for room_type, members in by_type.items():
            prices = [room.base_price for room in members]
            summaries.append(RoomTypeAvailability(
                room_type=room_type,
                count=len(members),
                min_price=min(prices),
                max_price=max(prices),
                average_price=round_money(sum(prices, Decimal("0")) / len(prices)),
                rooms=sorted(members, key=lambda r: r.room_number)
            ))
        return sorted(summaries, key=lambda s: (s.min_price, s.room_type.value))

    async def quote(self, room_id: UUID, check_in: datetime, check_out: datetime, guests: int = 1) -> AvailabilityQuote:
        """Availability of one room plus the price the stay would get"""
        period = build_period(check_in, check_out)
        if period.check_in < self.clock():
            raise ValidationError("Check-in date cannot be in the past")

        room = await self.room_repository.find_by_id(room_id)
        if not room or not room.is_active:
            raise NotFound("Room not found")
        if guests > room.max_occupancy:
            raise ValidationError(f"Room can accommodate maximum {room.max_occupancy} guests")

        return AvailabilityQuote(
            room=room,
            period=period,
            available=await self.room_is_free(room, period),
            pricing=self.pricing.price(room, period)
        )


# ============================================================================
# BOOKING LIFECYCLE
# ============================================================================

class BookingService:
    """Reservation lifecycle: create, confirm, check in/out, cancel, no-show

    Room locks guard the calendar; guest locks (keyed by email) guard the
    guest record, which bookings for different rooms share. A guest lock is
    only ever taken inside a room lock or on its own, never the reverse.
    """

    def __init__(
        self,
        room_repository: RoomRepository,
        guest_repository: GuestRepository,
        reservation_repository: ReservationRepository,
        availability: AvailabilityService,
        pricing: PricingEngine,
        payment_gateway: PaymentGateway,
        notifier: NotificationSender,
        locks: LockRegistry,
        guest_locks: Optional[LockRegistry] = None,
        booking_number_prefix: str = "OVH",
        max_code_attempts: int = 5,
        payment_timeout: float = 10.0,
        cancellation_cutoff_hours: float = 24,
        clock: Callable[[], datetime] = utc_now
    ):
        self.room_repository = room_repository
        self.guest_repository = guest_repository
        self.repository = reservation_repository
        self.availability = availability
        self.pricing = pricing
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.locks = locks
        self.guest_locks = guest_locks or LockRegistry()
        self.booking_number_prefix = booking_number_prefix
        self.max_code_attempts = max_code_attempts
        self.payment_timeout = payment_timeout
        self.cancellation_cutoff_hours = cancellation_cutoff_hours
        self.clock = clock

    # ==================== CREATION ====================
    async def create_booking_request(
        self,
        guest_info: GuestInfo,
        room_id: UUID,
        check_in: datetime,
        check_out: datetime,
        occupancy: Occupancy,
        special_requests: Optional[str] = None,
        booking_source: BookingSource = BookingSource.DIRECT
    ) -> Reservation:
        """Pending, unpaid booking request"""
        now = self.clock()
        period = build_period(check_in, check_out)
        room = await self._get_bookable_room(room_id)
        Reservation.validate_request(room, period, occupancy, now)

        async with self.locks.hold(room.room_id):
            await self._ensure_available(room, period)
            guest = await self._find_or_create_guest(guest_info)
            pricing = self.pricing.price(room, period)
            reservation = await self._insert_new(
                room, guest, period, occupancy, pricing, now, special_requests, booking_source
            )

        logger.info(
            "Booking request %s created for room %s (%s -> %s)",
            reservation.booking_number, room.room_number, period.check_in, period.check_out
        )
        return reservation

    async def create_booking(
        self,
        guest_info: GuestInfo,
        room_id: UUID,
        check_in: datetime,
        check_out: datetime,
        occupancy: Occupancy,
        payment_token: str,
        special_requests: Optional[str] = None,
        booking_source: BookingSource = BookingSource.DIRECT
    ) -> Reservation:
        """Book and capture payment; Confirmed on success, Pending while processing"""
        if not payment_token or not payment_token.strip():
            raise ValidationError("Payment method is required")

        now = self.clock()
        period = build_period(check_in, check_out)
        room = await self._get_bookable_room(room_id)
        Reservation.validate_request(room, period, occupancy, now)

        async with self.locks.hold(room.room_id):
            await self._ensure_available(room, period)
            guest = await self._find_or_create_guest(guest_info)
            pricing = self.pricing.price(room, period)
            reservation = await self._insert_new(
                room, guest, period, occupancy, pricing, now, special_requests, booking_source
            )
            outcome = await self._capture(reservation, payment_token, guest)

            expected_version = reservation.version
            if outcome.succeeded:
                reservation.confirm(outcome.payment_reference, self.clock())
                reservation.loyalty_points_earned = self._loyalty_points(reservation)
                try:
                    await self._save(reservation, expected_version)
                except Conflict:
                    await self._release_capture(reservation, outcome.payment_reference)
                    raise
                await self._record_paid_stay(guest, reservation)
            else:
                reservation.record_payment_pending(outcome.payment_reference, self.clock())
                await self._save(reservation, expected_version)

        if reservation.status == ReservationStatus.CONFIRMED:
            logger.info("Booking %s confirmed, payment %s", reservation.booking_number, reservation.payment_reference)
            await self._send_confirmation(reservation, guest, room)
        else:
            logger.info("Booking %s created, payment processing", reservation.booking_number)
        return reservation

    # ==================== QUERIES ====================
    async def get_booking(
        self,
        booking_number: str,
        confirmation_code: Optional[str] = None,
        caller: Optional[User] = None
    ) -> Reservation:
        """Look up a booking; the confirmation code stands in for authentication"""
        if confirmation_code is None and caller is None:
            raise NotAuthenticated("Confirmation code or authentication required")

        if confirmation_code is not None:
            return await self._get_by_code(booking_number, confirmation_code)

        reservation = await self.repository.find_by_booking_number(booking_number)
        if not reservation:
            raise NotFound("Booking not found")
        return reservation

    async def get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            raise NotFound("Booking not found")
        return reservation

    async def list_bookings(
        self,
        status: Optional[ReservationStatus] = None,
        check_in_from: Optional[datetime] = None,
        check_in_to: Optional[datetime] = None,
        guest_email: Optional[str] = None,
        room_type: Optional[RoomType] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> BookingPage:
        """Filtered, sorted page of bookings for the back office"""
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("Sort order must be 'asc' or 'desc'")
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if not 1 <= limit <= 100:
            raise ValidationError("Limit must be between 1 and 100")

        query = ReservationQuery(
            status=status,
            check_in_from=ensure_utc(check_in_from) if check_in_from else None,
            check_in_to=ensure_utc(check_in_to) if check_in_to else None,
            sort_by=sort_by,
            descending=sort_order == "desc",
            offset=(page - 1) * limit,
            limit=limit
        )

        if guest_email:
            guest = await self.guest_repository.find_by_email(guest_email)
            if not guest:
                return self._page([], 0, page, limit)
            query.guest_id = guest.guest_id

        if room_type:
            rooms = await self.room_repository.find_all()
            query.room_ids = {r.room_id for r in rooms if r.room_type == room_type}

        bookings, total_count = await self.repository.search(query)
        return self._page(bookings, total_count, page, limit)

    # ==================== TRANSITIONS ====================
    async def confirm_booking(self, reservation_id: UUID, payment_reference: Optional[str] = None) -> Reservation:
        """Manual confirmation of a Pending request once payment is received"""
        reservation = await self.get_reservation(reservation_id)

        async with self.locks.hold(reservation.room_id):
            reservation = await self.get_reservation(reservation_id)
            if reservation.status != ReservationStatus.PENDING:
                raise InvalidTransition(
                    f"Cannot confirm reservation with status {reservation.status.value}"
                )
            if await self.availability.has_conflict(reservation.room_id, reservation.period, reservation.reservation_id):
                raise Conflict(NOT_AVAILABLE)

            expected_version = reservation.version
            reservation.confirm(payment_reference, self.clock())
            reservation.loyalty_points_earned = self._loyalty_points(reservation)
            await self._save(reservation, expected_version)

            guest = await self._get_guest(reservation.guest_id)
            await self._record_paid_stay(guest, reservation)

        logger.info("Booking %s confirmed manually", reservation.booking_number)
        room = await self.room_repository.find_by_id(reservation.room_id)
        if room:
            await self._send_confirmation(reservation, guest, room)
        return reservation

    async def check_in(self, reservation_id: UUID) -> Reservation:
        """Confirmed -> Checked In; the room is marked Occupied"""
        reservation = await self.get_reservation(reservation_id)

        async with self.locks.hold(reservation.room_id):
            reservation = await self.get_reservation(reservation_id)
            expected_version = reservation.version
            now = self.clock()
            reservation.check_in(now)
            await self._save(reservation, expected_version)

        logger.info("Guest checked in for booking %s", reservation.booking_number)
        await self._update_room_status(reservation.room_id, lambda room: room.mark_occupied())
        return reservation

    async def check_out(self, reservation_id: UUID) -> Reservation:
        """Checked In -> Checked Out; the room is released and flagged for cleaning"""
        reservation = await self.get_reservation(reservation_id)

        async with self.locks.hold(reservation.room_id):
            reservation = await self.get_reservation(reservation_id)
            expected_version = reservation.version
            now = self.clock()
            reservation.check_out(now)
            await self._save(reservation, expected_version)

        logger.info("Guest checked out for booking %s", reservation.booking_number)
        await self._update_room_status(
            reservation.room_id, lambda room: room.release_after_checkout(now)
        )
        return reservation

    async def mark_no_show(self, reservation_id: UUID) -> Reservation:
        reservation = await self.get_reservation(reservation_id)

        async with self.locks.hold(reservation.room_id):
            reservation = await self.get_reservation(reservation_id)
            expected_version = reservation.version
            reservation.mark_no_show(self.clock())
            await self._save(reservation, expected_version)

        logger.info("Booking %s marked as no-show", reservation.booking_number)
        return reservation

    async def cancel_booking(
        self,
        booking_number: str,
        confirmation_code: str,
        reason: Optional[str] = None
    ) -> CancellationResult:
        """Guest cancellation: fee by time to check-in, refund before the status changes"""
        if not confirmation_code:
            raise ValidationError("Confirmation code is required")
        if reason and len(reason) > 500:
            raise ValidationError("Reason too long")

        reservation = await self._get_by_code(booking_number, confirmation_code)

        async with self.locks.hold(reservation.room_id):
            reservation = await self._get_by_code(booking_number, confirmation_code)
            now = self.clock()
            reservation.ensure_cancellable(now, self.cancellation_cutoff_hours)

            quote = quote_cancellation(
                reservation.pricing.total, reservation.period.hours_until_check_in(now)
            )
            expected_version = reservation.version

            refund_issued = False
            refundable = (
                reservation.payment_reference is not None
                and reservation.payment_status == PaymentStatus.PAID
                and quote.refund > 0
            )
            if refundable:
                await self._refund(reservation, quote.refund, reason)
                refund_issued = True

            reservation.cancel(reason, quote.fee, quote.refund, refund_issued, now)
            await self._save(reservation, expected_version)

        logger.info(
            "Booking %s cancelled, fee %s, refund %s",
            reservation.booking_number, quote.fee, quote.refund
        )

        guest = await self.guest_repository.find_by_id(reservation.guest_id)
        room = await self.room_repository.find_by_id(reservation.room_id)
        if guest and room:
            await self._notify(self.notifier.booking_cancelled, reservation, guest, room)

        return CancellationResult(
            booking_number=reservation.booking_number,
            cancellation_fee=quote.fee,
            refund_amount=quote.refund,
            refund_issued=refund_issued,
            status=reservation.status
        )

    async def reconcile_room_status(self, room_id: UUID) -> Room:
        """Repair a room's operational status from its checked-in reservations"""
        room = await self.room_repository.find_by_id(room_id)
        if not room:
            raise NotFound("Room not found")

        occupied, _ = await self.repository.search(ReservationQuery(
            status=ReservationStatus.CHECKED_IN, room_ids={room_id}, limit=1
        ))
        if occupied and room.status == RoomStatus.AVAILABLE:
            room.mark_occupied()
        elif not occupied and room.status == RoomStatus.OCCUPIED:
            room.status = RoomStatus.AVAILABLE
        else:
            return room

        logger.info("Room %s status reconciled to %s", room.room_number, room.status.value)
        return await self.room_repository.update(room)

    # ==================== PRIVATE HELPERS ====================
    async def _get_bookable_room(self, room_id: UUID) -> Room:
        room = await self.room_repository.find_by_id(room_id)
        if not room or not room.is_active:
            raise NotFound("Room not found")
        return room

    async def _get_guest(self, guest_id: UUID) -> Guest:
        guest = await self.guest_repository.find_by_id(guest_id)
        if not guest:
            raise NotFound("Guest not found")
        return guest

    async def _get_by_code(self, booking_number: str, confirmation_code: str) -> Reservation:
        reservation = await self.repository.find_by_booking_number(booking_number)
        if not reservation or not secrets.compare_digest(
            reservation.confirmation_code.encode(), confirmation_code.encode()
        ):
            raise NotFound("Booking not found")
        return reservation

    async def _ensure_available(self, room: Room, period: StayPeriod) -> None:
        if not await self.availability.room_is_free(room, period):
            raise Conflict(NOT_AVAILABLE)

    async def _find_or_create_guest(self, guest_info: GuestInfo) -> Guest:
        async with self.guest_locks.hold(guest_info.email):
            guest = await self.guest_repository.find_by_email(guest_info.email)
            if guest:
                guest.update_contact(guest_info.first_name, guest_info.last_name, guest_info.phone)
                return await self.guest_repository.update(guest)

            return await self.guest_repository.save(Guest(**guest_info.model_dump()))

    async def _insert_new(
        self,
        room: Room,
        guest: Guest,
        period: StayPeriod,
        occupancy: Occupancy,
        pricing: PricingSnapshot,
        now: datetime,
        special_requests: Optional[str],
        booking_source: BookingSource
    ) -> Reservation:
        """Persist a new reservation, regenerating codes on collision"""
        for attempt in range(1, self.max_code_attempts + 1):
            booking_number = generate_booking_number(self.booking_number_prefix, now)
            confirmation_code = generate_confirmation_code()

            if (await self.repository.find_by_booking_number(booking_number)
                    or await self.repository.find_by_confirmation_code(confirmation_code)):
                logger.warning("Generated booking code already in use (attempt %d)", attempt)
                continue

            try:
                reservation = Reservation.create(
                    room=room,
                    guest_id=guest.guest_id,
                    period=period,
                    occupancy=occupancy,
                    pricing=pricing,
                    booking_number=booking_number,
                    confirmation_code=confirmation_code,
                    now=now,
                    special_requests=special_requests,
                    booking_source=booking_source
                )
            except SchemaValidationError as e:
                raise ValidationError(_validation_message(e)) from e

            try:
                return await self.repository.add(reservation)
            except DuplicateKeyError as e:
                logger.warning("Duplicate %s on insert (attempt %d)", e.field, attempt)
            except OverlapError as e:
                raise Conflict(NOT_AVAILABLE) from e

        raise Conflict("Could not allocate a unique booking number, please retry")

    async def _save(self, reservation: Reservation, expected_version: int) -> Reservation:
        try:
            return await self.repository.update(reservation, expected_version)
        except OverlapError as e:
            raise Conflict(NOT_AVAILABLE) from e

    async def _capture(self, reservation: Reservation, payment_token: str, guest: Guest) -> PaymentOutcome:
        """Charge the booking total; declines, errors and timeouts raise PaymentFailed"""
        amount = reservation.pricing.total
        metadata = {
            "booking_number": reservation.booking_number,
            "room_id": str(reservation.room_id),
            "guest_email": guest.email,
            "check_in": reservation.period.check_in.isoformat(),
            "check_out": reservation.period.check_out.isoformat(),
        }

        reason = None
        outcome = None
        try:
            outcome = await asyncio.wait_for(
                self.payment_gateway.capture(amount, payment_token, metadata),
                timeout=self.payment_timeout
            )
        except asyncio.TimeoutError:
            reason = "Payment processor timed out"
        except Exception as e:
            logger.exception("Payment capture error for %s", reservation.booking_number)
            reason = str(e) or e.__class__.__name__

        if outcome is not None and outcome.status != PaymentOutcomeStatus.DECLINED:
            return outcome
        if outcome is not None:
            reason = outcome.reason or "Payment declined"

        logger.warning(
            "Payment of %s failed for %s: %s", amount, reservation.booking_number, reason
        )
        expected_version = reservation.version
        reservation.record_payment_failure(self.clock())
        await self._save(reservation, expected_version)
        raise PaymentFailed(
            "Payment processing failed",
            amount=amount,
            reason=reason,
            booking_number=reservation.booking_number
        )

    async def _refund(self, reservation: Reservation, amount: Decimal, reason: Optional[str]) -> None:
        metadata = {
            "booking_number": reservation.booking_number,
            "reason": reason or "Guest cancellation",
        }
        failure = None
        try:
            outcome = await asyncio.wait_for(
                self.payment_gateway.refund(reservation.payment_reference, amount, metadata),
                timeout=self.payment_timeout
            )
            if not outcome.succeeded:
                failure = outcome.reason or "Refund declined"
        except asyncio.TimeoutError:
            failure = "Payment processor timed out"
        except Exception as e:
            logger.exception("Refund error for %s", reservation.booking_number)
            failure = str(e) or e.__class__.__name__

        if failure:
            logger.warning("Refund of %s failed for %s: %s", amount, reservation.booking_number, failure)
            raise RefundFailed("Refund processing failed", amount=amount, reason=failure)

    async def _release_capture(self, reservation: Reservation, payment_reference: str) -> None:
        """Give back a capture whose booking lost the room when it was written

        The stored row is still Pending; it is closed as Cancelled with the
        payment reference recorded, Refunded when the money went back and
        Paid (for manual follow-up) when it did not.
        """
        amount = reservation.pricing.total
        refunded = True
        try:
            await self._refund(reservation, amount, LOST_ROOM_REASON)
        except RefundFailed:
            refunded = False
            logger.error(
                "Capture %s of %s for %s kept after a room conflict, refund it manually",
                payment_reference, amount, reservation.booking_number
            )

        stored = await self.repository.find_by_id(reservation.reservation_id)
        if stored is None or stored.status != ReservationStatus.PENDING:
            return
        expected_version = stored.version
        stored.abandon(LOST_ROOM_REASON, payment_reference, refunded, self.clock())
        await self.repository.update(stored, expected_version)
        logger.info("Booking %s closed after losing its room", reservation.booking_number)

    @staticmethod
    def _loyalty_points(reservation: Reservation) -> int:
        """One point per 10 currency units"""
        return math.floor(reservation.pricing.total / 10)

    async def _record_paid_stay(self, guest: Guest, reservation: Reservation) -> None:
        """Apply the stay to the stored guest, not to the copy read before payment"""
        async with self.guest_locks.hold(guest.email):
            latest = await self._get_guest(guest.guest_id)
            latest.record_stay(reservation.pricing.total, self.clock())
            latest.add_loyalty_points(reservation.loyalty_points_earned)
            await self.guest_repository.update(latest)

    async def _send_confirmation(self, reservation: Reservation, guest: Guest, room: Room) -> None:
        if not await self._notify(self.notifier.booking_confirmed, reservation, guest, room):
            return
        async with self.locks.hold(reservation.room_id):
            latest = await self.repository.find_by_id(reservation.reservation_id)
            if latest:
                latest.confirmation_sent = True
                await self.repository.update(latest, latest.version)
                reservation.confirmation_sent = True

    async def _notify(
        self,
        send: Callable[[Reservation, Guest, Room], Awaitable[None]],
        reservation: Reservation,
        guest: Guest,
        room: Room
    ) -> bool:
        """Notifications never fail the operation that triggered them"""
        try:
            await send(reservation, guest, room)
            return True
        except Exception:
            logger.exception("Notification for booking %s failed", reservation.booking_number)
            return False

    async def _update_room_status(self, room_id: UUID, change: Callable[[Room], None]) -> None:
        """Room status is advisory; a failed write is logged for reconciliation"""
        try:
            room = await self.room_repository.find_by_id(room_id)
            if not room:
                logger.warning("Room %s vanished during status update", room_id)
                return
            change(room)
            await self.room_repository.update(room)
        except Exception:
            logger.exception("Room %s status update failed, needs reconciliation", room_id)

    @staticmethod
    def _page(bookings: List[Reservation], total_count: int, page: int, limit: int) -> BookingPage:
        total_pages = math.ceil(total_count / limit)
        return BookingPage(
            bookings=bookings,
            current_page=page,
            total_pages=total_pages,
            total_count=total_count,
            has_next_page=page < total_pages,
            has_prev_page=page > 1
        )
