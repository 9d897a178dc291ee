"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from domain.enums import BookingSource, RoomType, RoomStatus, UserRole


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class GuestInfoRequest(BaseModel):
    """Guest contact details DTO"""
    first_name: str
    last_name: str
    email: str
    phone: str


class CreateBookingRequestRequest(BaseModel):
    """Booking request (no payment) DTO"""
    room_id: UUID
    check_in: datetime
    check_out: datetime
    adults: int = Field(ge=1, le=8)
    children: int = Field(ge=0, le=8, default=0)
    guest_info: GuestInfoRequest
    special_requests: Optional[str] = Field(default=None, max_length=1000)
    booking_source: BookingSource = BookingSource.DIRECT


class CreateBookingRequest(CreateBookingRequestRequest):
    """Paid booking DTO"""
    payment_token: str = Field(min_length=1, description="Payment method token from the processor")


class ConfirmBookingRequest(BaseModel):
    """Manual confirmation DTO"""
    payment_reference: Optional[str] = None


class CancelBookingRequest(BaseModel):
    """Cancel booking request DTO"""
    confirmation_code: str = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class PricingResponse(BaseModel):
    nightly_rate: Decimal
    nights: int
    subtotal: Decimal
    tax: Decimal
    fees: Decimal
    discounts: Decimal
    total: Decimal
    currency: str


class CancellationResponse(BaseModel):
    reason: Optional[str] = None
    cancelled_at: datetime
    fee: Decimal
    refund_amount: Decimal


class BookingResponse(BaseModel):
    """Booking response DTO"""
    reservation_id: UUID
    booking_number: str
    confirmation_code: str
    room_id: UUID
    guest_id: UUID
    check_in: datetime
    check_out: datetime
    adults: int
    children: int
    pricing: PricingResponse
    status: str
    payment_status: str
    payment_reference: Optional[str] = None
    booking_source: str
    special_requests: Optional[str] = None
    cancellation: Optional[CancellationResponse] = None
    actual_check_in_time: Optional[datetime] = None
    actual_check_out_time: Optional[datetime] = None
    confirmation_sent: bool
    loyalty_points_earned: int
    created_at: datetime
    modified_at: datetime
    version: int


class CancellationResultResponse(BaseModel):
    """Outcome of a guest cancellation"""
    booking_number: str
    status: str
    cancellation_fee: Decimal
    refund_amount: Decimal
    refund_issued: bool


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: PaginationResponse


# ============================================================================
# ROOM SCHEMAS
# ============================================================================

class SeasonalRateRequest(BaseModel):
    season: str
    start_date: date
    end_date: date
    multiplier: Decimal = Field(gt=0)


class CreateRoomRequest(BaseModel):
    """Create room request DTO"""
    room_number: str = Field(min_length=1)
    name: str = Field(min_length=1)
    room_type: RoomType = RoomType.STANDARD
    max_occupancy: int = Field(ge=1, le=8)
    base_price: Decimal = Field(ge=0)
    seasonal_pricing: List[SeasonalRateRequest] = []
    status: RoomStatus = RoomStatus.AVAILABLE
    is_active: bool = True


class RoomAvailabilityRequest(BaseModel):
    """Room quote request DTO"""
    check_in: datetime
    check_out: datetime
    guests: int = Field(ge=1, default=1)


class SeasonalRateResponse(BaseModel):
    season: str
    start_date: date
    end_date: date
    multiplier: Decimal


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    room_number: str
    name: str
    room_type: str
    max_occupancy: int
    base_price: Decimal
    seasonal_pricing: List[SeasonalRateResponse]
    status: str
    is_active: bool
    cleaning_status: str
    last_cleaning: Optional[datetime] = None


class RoomAvailabilityResponse(BaseModel):
    """Room quote response DTO"""
    room_id: UUID
    room_number: str
    check_in: datetime
    check_out: datetime
    available: bool
    pricing: PricingResponse


class RoomTypeAvailabilityResponse(BaseModel):
    """Available rooms of one type"""
    room_type: str
    count: int
    min_price: Decimal
    max_price: Decimal
    average_price: Decimal
    rooms: List[RoomResponse]


# ============================================================================
# REPORTING SCHEMAS
# ============================================================================

class RevenueRowResponse(BaseModel):
    period: str
    total_revenue: Decimal
    bookings_count: int
    average_rate: Decimal


class RevenueSummaryResponse(BaseModel):
    total_revenue: Decimal
    total_bookings: int
    average_booking_value: Decimal
    start: datetime
    end: datetime


class RevenueReportResponse(BaseModel):
    """Revenue analytics response DTO"""
    revenue: List[RevenueRowResponse]
    summary: RevenueSummaryResponse


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole
    disabled: bool
