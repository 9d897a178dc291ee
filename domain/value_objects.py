"""Domain Value Objects"""
import math
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ONE_DAY = timedelta(days=1)
CENTS = Decimal("0.01")

_EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$")


def ensure_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC and normalise aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StayPeriod(BaseModel):
    """Half-open interval [check_in, check_out) a reservation claims"""
    model_config = ConfigDict(frozen=True)

    check_in: datetime
    check_out: datetime

    @field_validator("check_in", "check_out")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_out_after_check_in(self) -> "StayPeriod":
        if self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        return self

    def nights(self) -> int:
        """Partial days count as a full night"""
        return math.ceil((self.check_out - self.check_in) / ONE_DAY)

    def overlaps(self, other: "StayPeriod") -> bool:
        # a checkout on day X does not collide with a check-in on day X
        return self.check_in < other.check_out and other.check_in < self.check_out

    def hours_until_check_in(self, now: datetime) -> float:
        return (self.check_in - ensure_utc(now)).total_seconds() / 3600


class Occupancy(BaseModel):
    """Value Object for the party size"""
    model_config = ConfigDict(frozen=True)

    adults: int = Field(ge=1)
    children: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.adults + self.children


class SeasonalRate(BaseModel):
    """Price multiplier applied to a room while the date range is current"""
    model_config = ConfigDict(frozen=True)

    season: str
    start_date: date
    end_date: date
    multiplier: Decimal = Field(gt=0)

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "SeasonalRate":
        if self.end_date < self.start_date:
            raise ValueError("Seasonal rate end date cannot be before its start date")
        return self

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def overlaps(self, other: "SeasonalRate") -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date


class PricingSnapshot(BaseModel):
    """Prices frozen on the reservation when it is created"""
    model_config = ConfigDict(frozen=True)

    nightly_rate: Decimal
    nights: int = Field(ge=1)
    subtotal: Decimal
    tax: Decimal
    fees: Decimal = Decimal("0")
    discounts: Decimal = Decimal("0")
    total: Decimal


class CancellationRecord(BaseModel):
    """Populated on a reservation only once it is cancelled"""
    model_config = ConfigDict(frozen=True)

    reason: Optional[str] = None
    cancelled_at: datetime
    fee: Decimal
    refund_amount: Decimal


class CancellationQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    hours_until_check_in: float
    fee: Decimal
    refund: Decimal


class GuestInfo(BaseModel):
    """Contact details supplied with a booking"""
    model_config = ConfigDict(frozen=True)

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str
    phone: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_PATTERN.match(v):
            raise ValueError("Valid email is required")
        return v
