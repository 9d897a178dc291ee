"""Domain Service - Cancellation fee policy"""
from decimal import Decimal

from domain.pricing import round_money
from domain.value_objects import CancellationQuote

FREE_CANCELLATION_HOURS = 48
LATE_CANCELLATION_HOURS = 24
LATE_FEE_RATE = Decimal("0.25")
LAST_MINUTE_FEE_RATE = Decimal("0.50")


def cancellation_fee(total_amount: Decimal, hours_until_check_in: float) -> Decimal:
    """Fee withheld when a booking is cancelled

    more than 48h out  -> nothing
    24h < hours <= 48h -> 25% of the total
    24h or less        -> 50% of the total
    """
    if hours_until_check_in > FREE_CANCELLATION_HOURS:
        return Decimal("0.00")
    if hours_until_check_in > LATE_CANCELLATION_HOURS:
        return round_money(total_amount * LATE_FEE_RATE)
    return round_money(total_amount * LAST_MINUTE_FEE_RATE)


def quote_cancellation(total_amount: Decimal, hours_until_check_in: float) -> CancellationQuote:
    fee = cancellation_fee(total_amount, hours_until_check_in)
    return CancellationQuote(
        hours_until_check_in=hours_until_check_in,
        fee=fee,
        refund=total_amount - fee
    )
