"""Pydantic schemas returned by the ledger and accepted by the HTTP adapter."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from .models import BookingStatus


class BookingCreate(BaseModel):
    room_id: int
    check_in: date
    check_out: date
    units: int = 1
    guests: Optional[int] = None


class BookingUpdate(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    units: Optional[int] = None
    guests: Optional[int] = None


class BookingRead(BaseModel):
    id: int
    room_id: int
    user_id: int
    check_in: date
    check_out: date
    units_booked: int
    guests: Optional[int] = None
    total_price: Decimal
    status: BookingStatus
    created_at: datetime
    nights: int
    hotel_id: int
    hotel_name: str
    hotel_location: str
    room_type: str

    model_config = {"from_attributes": True}


class RoomAvailability(BaseModel):
    room_id: int
    hotel_id: int
    room_type: str
    price_per_night: Decimal
    capacity: int
    check_in: date
    check_out: date
    total_units: int
    committed_units: int
    available_units: int


class ErrorBody(BaseModel):
    detail: str
    error: str


class StatusCount(BaseModel):
    status: BookingStatus
    count: int


class BookingStats(BaseModel):
    """Ledger-wide totals; revenue and rooms booked cover active bookings only."""

    total_bookings: int
    active_bookings: int
    total_revenue: Decimal
    confirmed_revenue: Decimal
    avg_booking_value: Decimal
    total_rooms_booked: int
    bookings_by_status: List[StatusCount]
