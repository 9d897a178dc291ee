"""Notification sender that records guest messages in the log"""
import logging

from domain.entities import Reservation, Guest, Room
from domain.gateways import NotificationSender

logger = logging.getLogger(__name__)


class LoggingNotificationSender(NotificationSender):
    """Writes the confirmation/cancellation message to the application log"""

    async def booking_confirmed(self, reservation: Reservation, guest: Guest, room: Room) -> None:
        logger.info(
            "Booking confirmation for %s sent to %s (room %s, %s -> %s, total %s)",
            reservation.booking_number,
            guest.email,
            room.room_number,
            reservation.period.check_in.date(),
            reservation.period.check_out.date(),
            reservation.pricing.total,
        )

    async def booking_cancelled(self, reservation: Reservation, guest: Guest, room: Room) -> None:
        cancellation = reservation.cancellation
        logger.info(
            "Booking cancellation for %s sent to %s (fee %s, refund %s)",
            reservation.booking_number,
            guest.email,
            cancellation.fee if cancellation else None,
            cancellation.refund_amount if cancellation else None,
        )
