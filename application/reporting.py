"""Application Service - Revenue reporting"""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Literal

from pydantic import BaseModel

from domain.entities import Reservation
from domain.enums import REVENUE_STATUSES
from domain.exceptions import ValidationError
from domain.pricing import round_money
from domain.repositories import ReservationRepository
from domain.value_objects import ensure_utc

logger = logging.getLogger(__name__)

GroupBy = Literal["day", "month"]

_PERIOD_FORMATS: Dict[str, str] = {
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
}


class RevenueRow(BaseModel):
    period: str
    total_revenue: Decimal
    bookings_count: int
    average_rate: Decimal


class RevenueSummary(BaseModel):
    total_revenue: Decimal
    total_bookings: int
    average_booking_value: Decimal
    start: datetime
    end: datetime


class RevenueReport(BaseModel):
    rows: List[RevenueRow]
    summary: RevenueSummary


class ReportService:
    """Revenue over a check-in window, grouped by calendar day or month"""

    def __init__(self, reservation_repository: ReservationRepository):
        self.repository = reservation_repository

    async def revenue_report(self, start: datetime, end: datetime, group_by: GroupBy = "day") -> RevenueReport:
        """
        Revenue-bearing reservations (Confirmed, Checked In, Checked Out) whose
        check-in lies in [start, end], ascending by period.
        """
        if group_by not in _PERIOD_FORMATS:
            raise ValidationError("group_by must be 'day' or 'month'")

        start, end = ensure_utc(start), ensure_utc(end)
        if start > end:
            raise ValidationError("Report start must not be after its end")

        reservations = await self.repository.find_checking_in_between(start, end, set(REVENUE_STATUSES))

        groups: Dict[str, List[Reservation]] = defaultdict(list)
        for reservation in reservations:
            key = reservation.period.check_in.strftime(_PERIOD_FORMATS[group_by])
            groups[key].append(reservation)

        rows = [self._row(period, groups[period]) for period in sorted(groups)]

        total_revenue = sum((r.pricing.total for r in reservations), Decimal("0"))
        total_bookings = len(reservations)
        if total_bookings:
            average_booking_value = round_money(total_revenue / total_bookings)
        else:
            average_booking_value = Decimal("0.00")

        logger.debug("Revenue report %s..%s: %d bookings", start, end, total_bookings)

        return RevenueReport(
            rows=rows,
            summary=RevenueSummary(
                total_revenue=total_revenue,
                total_bookings=total_bookings,
                average_booking_value=average_booking_value,
                start=start,
                end=end
            )
        )

    @staticmethod
    def _row(period: str, reservations: List[Reservation]) -> RevenueRow:
        total = sum((r.pricing.total for r in reservations), Decimal("0"))
        rates = sum((r.pricing.nightly_rate for r in reservations), Decimal("0"))
        return RevenueRow(
            period=period,
            total_revenue=total,
            bookings_count=len(reservations),
            average_rate=round_money(rates / len(reservations))
        )
