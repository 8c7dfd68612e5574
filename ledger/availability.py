"""Availability calculator: how many units of a room are committed over a stay."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from .errors import InvalidDateRange, NotFound
from .models import ACTIVE_STATUSES, BookingStatus, Room
from .pricing import DateLike, parse_date, to_money
from .schemas import BookingStats, RoomAvailability, StatusCount
from .storage import BookingStore


def parse_stay(check_in: DateLike, check_out: DateLike) -> tuple[date, date]:
    start = parse_date(check_in, "check-in")
    end = parse_date(check_out, "check-out")
    if end <= start:
        raise InvalidDateRange("check-out must be after check-in", check_in=start.isoformat(), check_out=end.isoformat())
    return start, end


class AvailabilityCalculator:
    """Read-only queries over a store; results may be stale once returned."""

    def __init__(self, store: BookingStore) -> None:
        self.store = store

    def _require_room(self, room_id: int) -> Room:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFound("Room not found", room_id=room_id)
        return room

    def overlap_count(
        self,
        room_id: int,
        check_in: DateLike,
        check_out: DateLike,
        exclude_booking_id: Optional[int] = None,
    ) -> int:
        """Sum of units held by active bookings overlapping ``[check_in, check_out)``."""
        self._require_room(room_id)
        start, end = parse_stay(check_in, check_out)
        return self.store.sum_overlapping_units(room_id, start, end, exclude_booking_id)

    def describe(self, room: Room, check_in: date, check_out: date, committed: int) -> RoomAvailability:
        return RoomAvailability(
            room_id=room.id,
            hotel_id=room.hotel_id,
            room_type=room.room_type,
            price_per_night=room.price_per_night,
            capacity=room.capacity,
            check_in=check_in,
            check_out=check_out,
            total_units=room.total_units,
            committed_units=committed,
            available_units=max(0, room.total_units - committed),
        )

    def room_availability(self, room_id: int, check_in: DateLike, check_out: DateLike) -> RoomAvailability:
        room = self._require_room(room_id)
        start, end = parse_stay(check_in, check_out)
        committed = self.store.sum_overlapping_units(room.id, start, end)
        return self.describe(room, start, end, committed)

    def hotel_availability(self, hotel_id: int, check_in: DateLike, check_out: DateLike) -> List[RoomAvailability]:
        if self.store.get_hotel(hotel_id) is None:
            raise NotFound("Hotel not found", hotel_id=hotel_id)
        start, end = parse_stay(check_in, check_out)
        return [
            self.describe(room, start, end, self.store.sum_overlapping_units(room.id, start, end))
            for room in self.store.list_hotel_rooms(hotel_id)
        ]

    def booking_stats(self) -> BookingStats:
        by_status = self.store.count_bookings_by_status()
        active, revenue, average, units = self.store.summarize_bookings(ACTIVE_STATUSES)
        _, confirmed_revenue, _, _ = self.store.summarize_bookings((BookingStatus.CONFIRMED,))
        return BookingStats(
            total_bookings=sum(count for _, count in by_status),
            active_bookings=active,
            total_revenue=to_money(revenue),
            confirmed_revenue=to_money(confirmed_revenue),
            avg_booking_value=to_money(average),
            total_rooms_booked=units,
            bookings_by_status=[StatusCount(status=status, count=count) for status, count in by_status],
        )
