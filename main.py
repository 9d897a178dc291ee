import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Bookings
    CreateBookingRequestRequest, CreateBookingRequest, ConfirmBookingRequest,
    CancelBookingRequest, BookingResponse, PricingResponse, CancellationResponse,
    CancellationResultResponse, BookingListResponse, PaginationResponse,
    # Rooms
    CreateRoomRequest, RoomResponse, SeasonalRateResponse, RoomAvailabilityRequest,
    RoomAvailabilityResponse, RoomTypeAvailabilityResponse,
    # Reporting
    RevenueReportResponse, RevenueRowResponse, RevenueSummaryResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import (
    get_current_active_user, get_optional_user, require_admin, fake_users_db, get_user
)
from infrastructure.config import settings
from infrastructure.security import verify_password, create_access_token
from domain.auth import User

from application.services import (
    AvailabilityService, BookingService, RoomCatalogService, CancellationResult,
    RoomTypeAvailability
)
from application.reporting import ReportService, RevenueReport
from infrastructure.repositories.in_memory_repositories import (
    InMemoryRoomRepository, InMemoryGuestRepository, InMemoryReservationRepository
)
from infrastructure.locks import LockRegistry
from infrastructure.payments import SimulatedPaymentGateway
from infrastructure.notifications import LoggingNotificationSender
from domain.entities import Reservation, Room
from domain.enums import ReservationStatus, RoomType
from domain.exceptions import (
    BookingError, ValidationError, NotFound, Conflict, InvalidTransition,
    CancellationWindowClosed, PaymentFailed, RefundFailed, NotAuthenticated
)
from domain.pricing import PricingEngine
from domain.value_objects import GuestInfo, Occupancy, PricingSnapshot, utc_now

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Room allocation, pricing, cancellation and revenue reporting",
    version="1.0.0"
)

# Initialize repositories and collaborators
room_repo = InMemoryRoomRepository()
guest_repo = InMemoryGuestRepository()
reservation_repo = InMemoryReservationRepository()
room_locks = LockRegistry()
guest_locks = LockRegistry()
payment_gateway = SimulatedPaymentGateway()
notifier = LoggingNotificationSender()

# Dependency injection
def get_pricing_engine() -> PricingEngine:
    return PricingEngine(settings.TAX_RATE, settings.SEASONAL_RATE_BASIS)

def get_room_service() -> RoomCatalogService:
    return RoomCatalogService(room_repo)

def get_availability_service(pricing: PricingEngine = Depends(get_pricing_engine)) -> AvailabilityService:
    return AvailabilityService(room_repo, reservation_repo, pricing)

def get_booking_service(
    availability: AvailabilityService = Depends(get_availability_service),
    pricing: PricingEngine = Depends(get_pricing_engine)
) -> BookingService:
    return BookingService(
        room_repo, guest_repo, reservation_repo,
        availability=availability,
        pricing=pricing,
        payment_gateway=payment_gateway,
        notifier=notifier,
        locks=room_locks,
        guest_locks=guest_locks,
        booking_number_prefix=settings.BOOKING_NUMBER_PREFIX,
        max_code_attempts=settings.CODE_GENERATION_MAX_ATTEMPTS,
        payment_timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        cancellation_cutoff_hours=settings.CANCELLATION_CUTOFF_HOURS
    )

def get_report_service() -> ReportService:
    return ReportService(reservation_repo)

# ============================================================================
# ERROR MAPPING
# ============================================================================

def _http_error(error: BookingError) -> HTTPException:
    """Translate a domain error into the HTTP response the API promises"""
    if isinstance(error, (ValidationError, InvalidTransition, CancellationWindowClosed)):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, Conflict):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, PaymentFailed):
        return HTTPException(status_code=402, detail={
            "message": error.message,
            "amount": str(error.amount),
            "reason": error.reason,
            "booking_number": error.booking_number,
        })
    if isinstance(error, RefundFailed):
        return HTTPException(status_code=402, detail={
            "message": error.message,
            "amount": str(error.amount),
            "reason": error.reason,
        })
    if isinstance(error, NotAuthenticated):
        return HTTPException(
            status_code=401, detail=error.message, headers={"WWW-Authenticate": "Bearer"}
        )
    logger.error("Unhandled booking error: %s", error.message)
    return HTTPException(status_code=500, detail="Internal server error")

# ============================================================================
# HEALTH ENDPOINT
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(user.username, user.role.value)
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings/request", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking_request(
    request: CreateBookingRequestRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Create a Pending booking request without payment"""
    try:
        reservation = await service.create_booking_request(
            guest_info=_guest_info(request),
            room_id=request.room_id,
            check_in=request.check_in,
            check_out=request.check_out,
            occupancy=Occupancy(adults=request.adults, children=request.children),
            special_requests=request.special_requests,
            booking_source=request.booking_source
        )
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.post("/api/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Create a booking and capture payment"""
    try:
        reservation = await service.create_booking(
            guest_info=_guest_info(request),
            room_id=request.room_id,
            check_in=request.check_in,
            check_out=request.check_out,
            occupancy=Occupancy(adults=request.adults, children=request.children),
            payment_token=request.payment_token,
            special_requests=request.special_requests,
            booking_source=request.booking_source
        )
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.get("/api/bookings", response_model=BookingListResponse, tags=["Bookings"])
async def list_bookings(
    status: Optional[ReservationStatus] = None,
    check_in_from: Optional[datetime] = None,
    check_in_to: Optional[datetime] = None,
    guest_email: Optional[str] = None,
    room_type: Optional[RoomType] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_admin)
):
    """List bookings with filters and pagination"""
    try:
        result = await service.list_bookings(
            status=status,
            check_in_from=check_in_from,
            check_in_to=check_in_to,
            guest_email=guest_email,
            room_type=room_type,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order
        )
    except BookingError as e:
        raise _http_error(e)

    return BookingListResponse(
        bookings=[_booking_to_response(r) for r in result.bookings],
        pagination=PaginationResponse(
            current_page=result.current_page,
            total_pages=result.total_pages,
            total_count=result.total_count,
            has_next_page=result.has_next_page,
            has_prev_page=result.has_prev_page
        )
    )

# Declared before /api/bookings/{booking_number} so "analytics" is not read as a booking number
@app.get("/api/bookings/analytics/revenue", response_model=RevenueReportResponse, tags=["Analytics"])
async def revenue_analytics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    group_by: str = "day",
    service: ReportService = Depends(get_report_service),
    current_user: User = Depends(require_admin)
):
    """Revenue by day or month; defaults to the last 30 days"""
    end = end_date or utc_now()
    start = start_date or end - timedelta(days=30)
    try:
        report = await service.revenue_report(start, end, group_by=group_by)
        return _report_to_response(report)
    except BookingError as e:
        raise _http_error(e)

@app.get("/api/bookings/{booking_number}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_number: str,
    confirmation_code: Optional[str] = None,
    service: BookingService = Depends(get_booking_service),
    caller: Optional[User] = Depends(get_optional_user)
):
    """Get booking by number; guests pass their confirmation code"""
    try:
        reservation = await service.get_booking(booking_number, confirmation_code, caller)
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.put("/api/bookings/{booking_number}/cancel", response_model=CancellationResultResponse, tags=["Bookings"])
async def cancel_booking(
    booking_number: str,
    request: CancelBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Guest cancellation with confirmation code"""
    try:
        result = await service.cancel_booking(booking_number, request.confirmation_code, request.reason)
        return _cancellation_to_response(result)
    except BookingError as e:
        raise _http_error(e)

@app.post("/api/bookings/id/{reservation_id}/confirm", response_model=BookingResponse, tags=["Bookings"])
async def confirm_booking(
    reservation_id: UUID,
    request: ConfirmBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_admin)
):
    """Confirm a Pending booking after payment was received"""
    try:
        reservation = await service.confirm_booking(reservation_id, request.payment_reference)
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.put("/api/bookings/id/{reservation_id}/checkin", response_model=BookingResponse, tags=["Bookings"])
async def check_in(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_admin)
):
    """Check guest in"""
    try:
        reservation = await service.check_in(reservation_id)
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.put("/api/bookings/id/{reservation_id}/checkout", response_model=BookingResponse, tags=["Bookings"])
async def check_out(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_admin)
):
    """Check guest out"""
    try:
        reservation = await service.check_out(reservation_id)
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

@app.put("/api/bookings/id/{reservation_id}/no-show", response_model=BookingResponse, tags=["Bookings"])
async def mark_no_show(
    reservation_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_admin)
):
    """Mark booking as no-show"""
    try:
        reservation = await service.mark_no_show(reservation_id)
        return _booking_to_response(reservation)
    except BookingError as e:
        raise _http_error(e)

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def create_room(
    request: CreateRoomRequest,
    service: RoomCatalogService = Depends(get_room_service),
    current_user: User = Depends(require_admin)
):
    """Add a room to the catalog"""
    try:
        room = await service.create_room(
            room_number=request.room_number,
            name=request.name,
            room_type=request.room_type,
            max_occupancy=request.max_occupancy,
            base_price=request.base_price,
            seasonal_pricing=[s.model_dump() for s in request.seasonal_pricing],
            status=request.status,
            is_active=request.is_active
        )
        return _room_to_response(room)
    except BookingError as e:
        raise _http_error(e)

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    room_type: Optional[RoomType] = None,
    service: RoomCatalogService = Depends(get_room_service)
):
    """List active rooms"""
    rooms = await service.list_rooms(room_type=room_type)
    return [_room_to_response(r) for r in rooms]

@app.get("/api/rooms/search", response_model=List[RoomResponse], tags=["Rooms"])
async def search_available_rooms(
    check_in: datetime,
    check_out: datetime,
    guests: int = 1,
    room_type: Optional[RoomType] = None,
    service: AvailabilityService = Depends(get_availability_service)
):
    """Rooms free for the whole stay with room for the party"""
    try:
        rooms = await service.find_available(check_in, check_out, min_capacity=guests, room_type=room_type)
        return [_room_to_response(r) for r in rooms]
    except BookingError as e:
        raise _http_error(e)

@app.get("/api/rooms/types/available", response_model=List[RoomTypeAvailabilityResponse], tags=["Rooms"])
async def list_available_room_types(
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
    guests: int = 1,
    service: AvailabilityService = Depends(get_availability_service)
):
    """Available rooms grouped by type with count and starting price"""
    try:
        summaries = await service.find_available_types(check_in, check_out, guests=guests)
        return [_room_type_to_response(s) for s in summaries]
    except BookingError as e:
        raise _http_error(e)

@app.get("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def get_room(
    room_id: UUID,
    service: RoomCatalogService = Depends(get_room_service)
):
    """Get room by ID"""
    try:
        room = await service.get_room(room_id)
        return _room_to_response(room)
    except BookingError as e:
        raise _http_error(e)

@app.post("/api/rooms/{room_id}/availability", response_model=RoomAvailabilityResponse, tags=["Rooms"])
async def check_room_availability(
    room_id: UUID,
    request: RoomAvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service)
):
    """Availability and price of one room for a stay"""
    try:
        quote = await service.quote(room_id, request.check_in, request.check_out, request.guests)
    except BookingError as e:
        raise _http_error(e)

    return RoomAvailabilityResponse(
        room_id=quote.room.room_id,
        room_number=quote.room.room_number,
        check_in=quote.period.check_in,
        check_out=quote.period.check_out,
        available=quote.available,
        pricing=_pricing_to_response(quote.pricing)
    )

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _guest_info(request: CreateBookingRequestRequest) -> GuestInfo:
    """Guest details from a request, reporting bad input as ValidationError"""
    try:
        return GuestInfo(**request.guest_info.model_dump())
    except ValueError as e:
        raise ValidationError("Guest information is incomplete or invalid") from e

def _pricing_to_response(pricing: PricingSnapshot) -> PricingResponse:
    return PricingResponse(
        nightly_rate=pricing.nightly_rate,
        nights=pricing.nights,
        subtotal=pricing.subtotal,
        tax=pricing.tax,
        fees=pricing.fees,
        discounts=pricing.discounts,
        total=pricing.total,
        currency=settings.CURRENCY
    )

def _booking_to_response(reservation: Reservation) -> BookingResponse:
    """Convert Reservation entity to BookingResponse"""
    cancellation = None
    if reservation.cancellation:
        cancellation = CancellationResponse(
            reason=reservation.cancellation.reason,
            cancelled_at=reservation.cancellation.cancelled_at,
            fee=reservation.cancellation.fee,
            refund_amount=reservation.cancellation.refund_amount
        )

    return BookingResponse(
        reservation_id=reservation.reservation_id,
        booking_number=reservation.booking_number,
        confirmation_code=reservation.confirmation_code,
        room_id=reservation.room_id,
        guest_id=reservation.guest_id,
        check_in=reservation.period.check_in,
        check_out=reservation.period.check_out,
        adults=reservation.occupancy.adults,
        children=reservation.occupancy.children,
        pricing=_pricing_to_response(reservation.pricing),
        status=reservation.status.value,
        payment_status=reservation.payment_status.value,
        payment_reference=reservation.payment_reference,
        booking_source=reservation.booking_source.value,
        special_requests=reservation.special_requests,
        cancellation=cancellation,
        actual_check_in_time=reservation.actual_check_in_time,
        actual_check_out_time=reservation.actual_check_out_time,
        confirmation_sent=reservation.confirmation_sent,
        loyalty_points_earned=reservation.loyalty_points_earned,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version
    )

def _cancellation_to_response(result: CancellationResult) -> CancellationResultResponse:
    return CancellationResultResponse(
        booking_number=result.booking_number,
        status=result.status.value,
        cancellation_fee=result.cancellation_fee,
        refund_amount=result.refund_amount,
        refund_issued=result.refund_issued
    )

def _room_to_response(room: Room) -> RoomResponse:
    """Convert Room entity to RoomResponse"""
    return RoomResponse(
        room_id=room.room_id,
        room_number=room.room_number,
        name=room.name,
        room_type=room.room_type.value,
        max_occupancy=room.max_occupancy,
        base_price=room.base_price,
        seasonal_pricing=[
            SeasonalRateResponse(
                season=s.season,
                start_date=s.start_date,
                end_date=s.end_date,
                multiplier=s.multiplier
            )
            for s in room.seasonal_pricing
        ],
        status=room.status.value,
        is_active=room.is_active,
        cleaning_status=room.cleaning_status.value,
        last_cleaning=room.last_cleaning
    )

def _room_type_to_response(summary: RoomTypeAvailability) -> RoomTypeAvailabilityResponse:
    return RoomTypeAvailabilityResponse(
        room_type=summary.room_type.value,
        count=summary.count,
        min_price=summary.min_price,
        max_price=summary.max_price,
        average_price=summary.average_price,
        rooms=[_room_to_response(r) for r in summary.rooms]
    )

def _report_to_response(report: RevenueReport) -> RevenueReportResponse:
    return RevenueReportResponse(
        revenue=[
            RevenueRowResponse(
                period=row.period,
                total_revenue=row.total_revenue,
                bookings_count=row.bookings_count,
                average_rate=row.average_rate
            )
            for row in report.rows
        ],
        summary=RevenueSummaryResponse(
            total_revenue=report.summary.total_revenue,
            total_bookings=report.summary.total_bookings,
            average_booking_value=report.summary.average_booking_value,
            start=report.summary.start,
            end=report.summary.end
        )
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
