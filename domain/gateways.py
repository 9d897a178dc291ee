"""Interfaces of external collaborators (payment processor, notifications)"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from domain.entities import Reservation, Guest, Room
from domain.enums import PaymentOutcomeStatus


class PaymentOutcome(BaseModel):
    """Result reported by the payment processor"""
    model_config = ConfigDict(frozen=True)

    status: PaymentOutcomeStatus
    payment_reference: Optional[str] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentOutcomeStatus.SUCCEEDED


class PaymentGateway(ABC):
    """Payment processor consumed by the booking engine"""

    @abstractmethod
    async def capture(self, amount: Decimal, token: str, metadata: Dict[str, str]) -> PaymentOutcome:
        """Charge ``amount`` using a payment method token"""
        pass

    @abstractmethod
    async def refund(self, payment_reference: str, amount: Decimal, metadata: Dict[str, str]) -> PaymentOutcome:
        """Refund ``amount`` of an earlier capture"""
        pass


class NotificationSender(ABC):
    """Guest-facing messages sent after lifecycle transitions"""

    @abstractmethod
    async def booking_confirmed(self, reservation: Reservation, guest: Guest, room: Room) -> None:
        pass

    @abstractmethod
    async def booking_cancelled(self, reservation: Reservation, guest: Guest, room: Room) -> None:
        pass
