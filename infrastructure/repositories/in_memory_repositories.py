"""In-Memory Repository Implementations

Every read returns a copy and every write stores a copy, so an aggregate
mutated by a failed operation never leaks into the store.
"""
from datetime import datetime
from typing import Optional, List, Dict, Set, Tuple
from uuid import UUID

from domain.repositories import (
    ReservationRepository, RoomRepository, GuestRepository, ReservationQuery
)
from domain.entities import Reservation, Room, Guest
from domain.enums import ReservationStatus
from domain.exceptions import NotFound, Conflict, DuplicateKeyError, OverlapError
from domain.value_objects import StayPeriod

_SORT_KEYS = {
    "created_at": lambda r: r.created_at,
    "check_in": lambda r: r.period.check_in,
    "total_amount": lambda r: r.pricing.total,
    "booking_number": lambda r: r.booking_number,
}


def _copy(model):
    return model.model_copy(deep=True) if model is not None else None


class InMemoryRoomRepository(RoomRepository):
    """In-memory implementation of RoomRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Room] = {}

    async def save(self, room: Room) -> Room:
        """Save room to memory"""
        existing = await self.find_by_room_number(room.room_number)
        if existing and existing.room_id != room.room_id:
            raise DuplicateKeyError("room_number", room.room_number)
        self._storage[room.room_id] = _copy(room)
        return room

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        return _copy(self._storage.get(room_id))

    async def find_by_room_number(self, room_number: str) -> Optional[Room]:
        for room in self._storage.values():
            if room.room_number == room_number:
                return _copy(room)
        return None

    async def find_all(self) -> List[Room]:
        return [_copy(r) for r in self._storage.values()]

    async def update(self, room: Room) -> Room:
        if room.room_id not in self._storage:
            raise NotFound("Room not found")
        self._storage[room.room_id] = _copy(room)
        return room


class InMemoryGuestRepository(GuestRepository):
    """In-memory implementation of GuestRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Guest] = {}

    async def save(self, guest: Guest) -> Guest:
        existing = await self.find_by_email(guest.email)
        if existing and existing.guest_id != guest.guest_id:
            raise DuplicateKeyError("email", guest.email)
        self._storage[guest.guest_id] = _copy(guest)
        return guest

    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        return _copy(self._storage.get(guest_id))

    async def find_by_email(self, email: str) -> Optional[Guest]:
        email = email.strip().lower()
        for guest in self._storage.values():
            if guest.email == email:
                return _copy(guest)
        return None

    async def update(self, guest: Guest) -> Guest:
        if guest.guest_id not in self._storage:
            raise NotFound("Guest not found")
        self._storage[guest.guest_id] = _copy(guest)
        return guest


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository

    The constraint checks and the write happen without an ``await`` in
    between, so they are atomic on the event loop.
    """

    def __init__(self):
        self._storage: Dict[UUID, Reservation] = {}

    def _check_unique(self, reservation: Reservation) -> None:
        for stored in self._storage.values():
            if stored.reservation_id == reservation.reservation_id:
                continue
            if stored.booking_number == reservation.booking_number:
                raise DuplicateKeyError("booking_number", reservation.booking_number)
            if stored.confirmation_code == reservation.confirmation_code:
                raise DuplicateKeyError("confirmation_code", reservation.confirmation_code)

    def _check_exclusion(self, reservation: Reservation) -> None:
        if not reservation.blocks_calendar():
            return
        for stored in self._storage.values():
            if stored.reservation_id == reservation.reservation_id:
                continue
            if stored.conflicts_with(reservation.room_id, reservation.period):
                raise OverlapError(
                    f"Reservation {reservation.booking_number} overlaps {stored.booking_number}"
                )

    async def add(self, reservation: Reservation) -> Reservation:
        """Insert reservation, enforcing uniqueness and the room exclusion constraint"""
        if reservation.reservation_id in self._storage:
            raise DuplicateKeyError("reservation_id", str(reservation.reservation_id))
        self._check_unique(reservation)
        self._check_exclusion(reservation)
        self._storage[reservation.reservation_id] = _copy(reservation)
        return reservation

    async def update(self, reservation: Reservation, expected_version: Optional[int] = None) -> Reservation:
        """Update reservation"""
        stored = self._storage.get(reservation.reservation_id)
        if stored is None:
            raise NotFound("Reservation not found")
        if expected_version is not None and stored.version != expected_version:
            raise Conflict("Reservation was modified concurrently, please retry")
        self._check_unique(reservation)
        self._check_exclusion(reservation)
        self._storage[reservation.reservation_id] = _copy(reservation)
        return reservation

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        return _copy(self._storage.get(reservation_id))

    async def find_by_booking_number(self, booking_number: str) -> Optional[Reservation]:
        for reservation in self._storage.values():
            if reservation.booking_number == booking_number:
                return _copy(reservation)
        return None

    async def find_by_confirmation_code(self, code: str) -> Optional[Reservation]:
        for reservation in self._storage.values():
            if reservation.confirmation_code == code:
                return _copy(reservation)
        return None

    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        return [_copy(r) for r in self._storage.values() if r.guest_id == guest_id]

    async def find_conflicting(
        self, room_id: UUID, period: StayPeriod, exclude_id: Optional[UUID] = None
    ) -> List[Reservation]:
        return [
            _copy(r) for r in self._storage.values()
            if r.reservation_id != exclude_id and r.conflicts_with(room_id, period)
        ]

    async def find_blocked_room_ids(self, period: StayPeriod) -> Set[UUID]:
        return {
            r.room_id for r in self._storage.values()
            if r.blocks_calendar() and r.period.overlaps(period)
        }

    async def find_checking_in_between(
        self, start: datetime, end: datetime, statuses: Set[ReservationStatus]
    ) -> List[Reservation]:
        return [
            _copy(r) for r in self._storage.values()
            if r.status in statuses and start <= r.period.check_in <= end
        ]

    async def search(self, query: ReservationQuery) -> Tuple[List[Reservation], int]:
        matches = [r for r in self._storage.values() if self._matches(r, query)]
        matches.sort(key=_SORT_KEYS[query.sort_by], reverse=query.descending)
        page = matches[query.offset:query.offset + query.limit]
        return [_copy(r) for r in page], len(matches)

    @staticmethod
    def _matches(reservation: Reservation, query: ReservationQuery) -> bool:
        if query.status is not None and reservation.status != query.status:
            return False
        if query.check_in_from is not None and reservation.period.check_in < query.check_in_from:
            return False
        if query.check_in_to is not None and reservation.period.check_in > query.check_in_to:
            return False
        if query.guest_id is not None and reservation.guest_id != query.guest_id:
            return False
        if query.room_ids is not None and reservation.room_id not in query.room_ids:
            return False
        return True
