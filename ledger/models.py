"""SQLAlchemy models for hotels, rooms and bookings."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class BookingStatus(str, Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# statuses whose units count against a room's inventory
ACTIVE_STATUSES = (BookingStatus.REQUESTED, BookingStatus.CONFIRMED)


class Hotel(Base):
    __tablename__ = "hotels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    location: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    rooms: Mapped[List["Room"]] = relationship(back_populates="hotel")


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("total_units >= 1", name="check_room_total_units_positive"),
        CheckConstraint("capacity >= 1", name="check_room_capacity_positive"),
        CheckConstraint("price_per_night > 0", name="check_room_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    hotel_id: Mapped[int] = mapped_column(ForeignKey("hotels.id", ondelete="CASCADE"), index=True)
    room_type: Mapped[str] = mapped_column(String(100))
    price_per_night: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total_units: Mapped[int] = mapped_column(Integer, default=1)
    capacity: Mapped[int] = mapped_column(Integer, default=2)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    hotel: Mapped[Hotel] = relationship(back_populates="rooms")
    bookings: Mapped[List["Booking"]] = relationship(back_populates="room")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("units_booked > 0", name="check_booking_units_positive"),
        CheckConstraint("check_out > check_in", name="check_booking_dates_ordered"),
        Index("ix_bookings_room_status_dates", "room_id", "status", "check_in", "check_out"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    units_booked: Mapped[int] = mapped_column(Integer, default=1)
    guests: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.REQUESTED)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    room: Mapped[Room] = relationship(back_populates="bookings")

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def hotel_id(self) -> int:
        return self.room.hotel_id

    @property
    def hotel_name(self) -> str:
        return self.room.hotel.name

    @property
    def hotel_location(self) -> str:
        return self.room.hotel.location

    @property
    def room_type(self) -> str:
        return self.room.room_type

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, room={self.room_id}, units={self.units_booked}, status={self.status.value})>"
