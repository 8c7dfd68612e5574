"""Booking transaction manager: the only place bookings are created or changed.

Every write runs under the room's lock and inside one store transaction, so the
read of committed units, the capacity check and the insert/update commit
together. Inventory is never cached: a cancelled booking simply stops being
counted by the overlap query.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, List, Optional

from sqlalchemy.orm import Session

from .availability import AvailabilityCalculator
from .cache import SimpleTTLCache
from .config import Settings, get_settings
from .database import SessionLocal
from .errors import Conflict, Forbidden, InvalidDateRange, InvalidRequest, NotFound
from .locks import RoomLockRegistry
from .models import Booking, BookingStatus, Room
from .pricing import DateLike, parse_date, quote_total
from .schemas import BookingRead, BookingStats, RoomAvailability
from .storage import SqlBookingStore, open_store


def _is_count(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class BookingManager:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        clock: Callable[[], date] = date.today,
        settings: Optional[Settings] = None,
        locks: Optional[RoomLockRegistry] = None,
    ) -> None:
        settings = settings or get_settings()
        self._session_factory = session_factory
        self._clock = clock
        self.lock_timeout = settings.lock_timeout_seconds
        self.max_units = settings.max_units_per_booking
        self.locks = locks if locks is not None else RoomLockRegistry(settings.lock_timeout_seconds)
        self._availability_cache: SimpleTTLCache[List[RoomAvailability]] = SimpleTTLCache(
            ttl=settings.availability_cache_ttl
        )
        # bumped after every committed write; guards the cache against stale fills
        self._write_generation = 0
        self._cache_guard = threading.Lock()

    @contextmanager
    def _critical_section(self, room_id: int) -> Iterator[SqlBookingStore]:
        with self.locks.hold(room_id):
            with open_store(self._session_factory, write=True) as store:
                store.set_lock_timeout(self.lock_timeout)
                yield store
        with self._cache_guard:
            self._write_generation += 1
            self._availability_cache.clear()

    # validation steps, in the order they are applied

    def _locked_room(self, store: SqlBookingStore, room_id: int) -> Room:
        room = store.get_room(room_id, for_update=True)
        if room is None:
            raise NotFound("Room not found", room_id=room_id)
        return room

    def _check_quantity(self, room: Room, units: object, guests: object) -> None:
        if not _is_count(units):
            raise InvalidRequest("units must be a positive integer", units=units)
        if units > self.max_units:
            raise InvalidRequest(f"At most {self.max_units} rooms can be booked at once", units=units)
        if not room.is_active:
            raise InvalidRequest("Room is not available", room_id=room.id)
        if guests is None:
            return
        if not _is_count(guests):
            raise InvalidRequest("guests must be a positive integer", guests=guests)
        if guests > room.capacity * units:
            raise InvalidRequest(
                f"Room capacity is {room.capacity} guests",
                guests=guests,
                capacity=room.capacity,
            )

    def _check_dates(self, check_in: DateLike, check_out: DateLike, *, reject_past: bool = True) -> tuple[date, date]:
        start = parse_date(check_in, "check-in")
        end = parse_date(check_out, "check-out")
        if reject_past and start < self._clock():
            raise InvalidDateRange("check-in cannot be in the past", check_in=start.isoformat())
        if end <= start:
            raise InvalidDateRange(
                "check-out must be after check-in",
                check_in=start.isoformat(),
                check_out=end.isoformat(),
            )
        return start, end

    def _ensure_capacity(
        self,
        store: SqlBookingStore,
        room: Room,
        check_in: date,
        check_out: date,
        units: int,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        committed = AvailabilityCalculator(store).overlap_count(room.id, check_in, check_out, exclude_booking_id)
        if committed + units > room.total_units:
            raise Conflict(available=max(0, room.total_units - committed), requested=units, room_id=room.id)

    # booking lookups

    def _room_of(self, booking_id: int) -> int:
        with open_store(self._session_factory) as store:
            booking = store.get_booking(booking_id)
            if booking is None:
                raise NotFound("Booking not found", booking_id=booking_id)
            return booking.room_id

    @staticmethod
    def _owned_booking(store: SqlBookingStore, booking_id: int, user_id: int, *, for_update: bool = False) -> Booking:
        booking = store.get_booking(booking_id, for_update=for_update)
        if booking is None:
            raise NotFound("Booking not found", booking_id=booking_id)
        if booking.user_id != user_id:
            raise Forbidden(booking_id=booking_id)
        return booking

    def _is_completed(self, booking: Booking) -> bool:
        return booking.status == BookingStatus.CONFIRMED and booking.check_out <= self._clock()

    # public operations

    def create_booking(
        self,
        room_id: int,
        user_id: int,
        check_in: DateLike,
        check_out: DateLike,
        units_requested: int = 1,
        guests: Optional[int] = None,
    ) -> BookingRead:
        with self._critical_section(room_id) as store:
            room = self._locked_room(store, room_id)
            if user_id is None:
                raise InvalidRequest("user_id is required")
            self._check_quantity(room, units_requested, guests)
            start, end = self._check_dates(check_in, check_out)
            self._ensure_capacity(store, room, start, end, units_requested)
            booking = store.insert_booking(
                room_id=room.id,
                user_id=user_id,
                check_in=start,
                check_out=end,
                units_booked=units_requested,
                guests=guests,
                total_price=quote_total(room.price_per_night, start, end, units_requested),
                status=BookingStatus.REQUESTED,
            )
            return BookingRead.model_validate(booking)

    def update_booking(
        self,
        booking_id: int,
        user_id: int,
        new_check_in: Optional[DateLike] = None,
        new_check_out: Optional[DateLike] = None,
        new_units: Optional[int] = None,
        new_guests: Optional[int] = None,
    ) -> BookingRead:
        room_id = self._room_of(booking_id)
        with self._critical_section(room_id) as store:
            booking = self._owned_booking(store, booking_id, user_id, for_update=True)
            if not booking.is_active:
                raise InvalidRequest("Cancelled bookings cannot be updated", booking_id=booking_id)
            if self._is_completed(booking):
                raise InvalidRequest("Completed stays cannot be updated", booking_id=booking_id)

            room = self._locked_room(store, booking.room_id)
            units = booking.units_booked if new_units is None else new_units
            guests = booking.guests if new_guests is None else new_guests
            self._check_quantity(room, units, guests)

            check_in = booking.check_in if new_check_in is None else new_check_in
            check_out = booking.check_out if new_check_out is None else new_check_out
            moves_check_in = new_check_in is not None and parse_date(new_check_in, "check-in") != booking.check_in
            start, end = self._check_dates(check_in, check_out, reject_past=moves_check_in)
            self._ensure_capacity(store, room, start, end, units, exclude_booking_id=booking.id)

            booking = store.update_booking(
                booking.id,
                check_in=start,
                check_out=end,
                units_booked=units,
                guests=guests,
                total_price=quote_total(room.price_per_night, start, end, units),
            )
            return BookingRead.model_validate(booking)

    def cancel_booking(self, booking_id: int, user_id: int) -> BookingRead:
        """Cancel a booking; cancelling it again returns it unchanged."""
        room_id = self._room_of(booking_id)
        with self._critical_section(room_id) as store:
            booking = self._owned_booking(store, booking_id, user_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED:
                return BookingRead.model_validate(booking)
            if self._is_completed(booking):
                raise InvalidRequest("Completed stays cannot be cancelled", booking_id=booking_id)
            booking = store.update_booking(booking.id, status=BookingStatus.CANCELLED)
            return BookingRead.model_validate(booking)

    def confirm_booking(self, booking_id: int, user_id: int) -> BookingRead:
        room_id = self._room_of(booking_id)
        with self._critical_section(room_id) as store:
            booking = self._owned_booking(store, booking_id, user_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED:
                raise InvalidRequest("Cancelled bookings cannot be confirmed", booking_id=booking_id)
            if booking.status == BookingStatus.REQUESTED:
                booking = store.update_booking(booking.id, status=BookingStatus.CONFIRMED)
            return BookingRead.model_validate(booking)

    def get_booking(self, booking_id: int, user_id: int) -> BookingRead:
        with open_store(self._session_factory) as store:
            return BookingRead.model_validate(self._owned_booking(store, booking_id, user_id))

    def list_user_bookings(self, user_id: int) -> List[BookingRead]:
        with open_store(self._session_factory) as store:
            return [BookingRead.model_validate(booking) for booking in store.list_user_bookings(user_id)]

    def overlap_count(
        self,
        room_id: int,
        check_in: DateLike,
        check_out: DateLike,
        exclude_booking_id: Optional[int] = None,
    ) -> int:
        with open_store(self._session_factory) as store:
            return AvailabilityCalculator(store).overlap_count(room_id, check_in, check_out, exclude_booking_id)

    def room_availability(self, room_id: int, check_in: DateLike, check_out: DateLike) -> RoomAvailability:
        with open_store(self._session_factory) as store:
            return AvailabilityCalculator(store).room_availability(room_id, check_in, check_out)

    def hotel_availability(self, hotel_id: int, check_in: DateLike, check_out: DateLike) -> List[RoomAvailability]:
        cache_key = f"hotel-availability:{hotel_id}:{check_in}:{check_out}"
        cached = self._availability_cache.get(cache_key)
        if cached is not None:
            return [entry.model_copy() for entry in cached]
        generation = self._write_generation
        with open_store(self._session_factory) as store:
            listing = AvailabilityCalculator(store).hotel_availability(hotel_id, check_in, check_out)
        with self._cache_guard:
            # a write committed while we were reading; the listing may predate it
            if generation == self._write_generation:
                self._availability_cache.set(cache_key, [entry.model_copy() for entry in listing])
        return listing

    def booking_stats(self) -> BookingStats:
        with open_store(self._session_factory) as store:
            return AvailabilityCalculator(store).booking_stats()
