"""Domain Service - Pricing Engine"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Callable, Optional

from domain.entities import Room
from domain.value_objects import StayPeriod, PricingSnapshot, CENTS, utc_now

SEASONAL_BASIS_BOOKING_TIME = "booking_time"
SEASONAL_BASIS_CHECK_IN = "check_in"


def round_money(amount: Decimal) -> Decimal:
    """Banker's rounding to cents, applied to final amounts only"""
    return amount.quantize(CENTS, rounding=ROUND_HALF_EVEN)


class PricingEngine:
    """Computes the frozen price of a stay

    The seasonal multiplier is looked up for the evaluation date. With the
    ``booking_time`` basis that date is the clock's current date, which is how
    rates have always been quoted; the ``check_in`` basis uses the first night
    of the stay instead.
    """

    def __init__(
        self,
        tax_rate: Decimal,
        seasonal_basis: str = SEASONAL_BASIS_BOOKING_TIME,
        clock: Callable[[], datetime] = utc_now
    ):
        if tax_rate < 0:
            raise ValueError("Tax rate cannot be negative")
        if seasonal_basis not in (SEASONAL_BASIS_BOOKING_TIME, SEASONAL_BASIS_CHECK_IN):
            raise ValueError(f"Unknown seasonal rate basis: {seasonal_basis}")

        self.tax_rate = Decimal(tax_rate)
        self.seasonal_basis = seasonal_basis
        self.clock = clock

    def nightly_rate(self, room: Room, period: StayPeriod) -> Decimal:
        if self.seasonal_basis == SEASONAL_BASIS_CHECK_IN:
            evaluation_day = period.check_in.date()
        else:
            evaluation_day = self.clock().date()
        return room.rate_on(evaluation_day)

    def price(
        self,
        room: Room,
        period: StayPeriod,
        fees: Optional[Decimal] = None,
        discounts: Optional[Decimal] = None
    ) -> PricingSnapshot:
        fees = fees or Decimal("0")
        discounts = discounts or Decimal("0")
        if fees < 0 or discounts < 0:
            raise ValueError("Fees and discounts cannot be negative")

        nights = period.nights()
        rate = self.nightly_rate(room, period)
        subtotal = rate * nights
        tax = subtotal * self.tax_rate
        total = round_money(subtotal + tax + fees - discounts)

        if total < 0:
            raise ValueError("Discounts cannot exceed the price of the stay")

        return PricingSnapshot(
            nightly_rate=rate,
            nights=nights,
            subtotal=subtotal,
            tax=tax,
            fees=fees,
            discounts=discounts,
            total=total
        )
