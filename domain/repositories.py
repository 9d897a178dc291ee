"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Set, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

from domain.entities import Reservation, Room, Guest
from domain.enums import ReservationStatus
from domain.value_objects import StayPeriod

SORTABLE_FIELDS = ("created_at", "check_in", "total_amount", "booking_number")


class ReservationQuery(BaseModel):
    """Filter, sort and paging criteria for listing reservations"""
    status: Optional[ReservationStatus] = None
    check_in_from: Optional[datetime] = None
    check_in_to: Optional[datetime] = None
    guest_id: Optional[UUID] = None
    room_ids: Optional[Set[UUID]] = None
    sort_by: str = "created_at"
    descending: bool = True
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)


class RoomRepository(ABC):
    """Repository interface for the room catalog"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        """Save room"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        pass

    @abstractmethod
    async def find_by_room_number(self, room_number: str) -> Optional[Room]:
        """Find room by its door number"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Room]:
        """Find all rooms"""
        pass

    @abstractmethod
    async def update(self, room: Room) -> Room:
        """Update room"""
        pass


class GuestRepository(ABC):
    """Repository interface for guests"""

    @abstractmethod
    async def save(self, guest: Guest) -> Guest:
        """Save guest"""
        pass

    @abstractmethod
    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        """Find guest by ID"""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[Guest]:
        """Find guest by (lower-cased) email"""
        pass

    @abstractmethod
    async def update(self, guest: Guest) -> Guest:
        """Update guest"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate

    Implementations enforce two storage constraints: booking numbers and
    confirmation codes are unique (``DuplicateKeyError``), and no two
    calendar-blocking reservations of one room overlap (``OverlapError``).
    """

    @abstractmethod
    async def add(self, reservation: Reservation) -> Reservation:
        """Insert a new reservation"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation, expected_version: Optional[int] = None) -> Reservation:
        """Replace a stored reservation, optionally guarding on the version read"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_booking_number(self, booking_number: str) -> Optional[Reservation]:
        """Find reservation by booking number"""
        pass

    @abstractmethod
    async def find_by_confirmation_code(self, code: str) -> Optional[Reservation]:
        """Find reservation by confirmation code"""
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        pass

    @abstractmethod
    async def find_conflicting(
        self, room_id: UUID, period: StayPeriod, exclude_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Calendar-blocking reservations of a room that overlap the period"""
        pass

    @abstractmethod
    async def find_blocked_room_ids(self, period: StayPeriod) -> Set[UUID]:
        """Rooms holding at least one blocking reservation overlapping the period"""
        pass

    @abstractmethod
    async def find_checking_in_between(
        self, start: datetime, end: datetime, statuses: Set[ReservationStatus]
    ) -> List[Reservation]:
        """Reservations in the given statuses whose check-in lies in [start, end]"""
        pass

    @abstractmethod
    async def search(self, query: ReservationQuery) -> Tuple[List[Reservation], int]:
        """One page of matching reservations and the total match count"""
        pass
