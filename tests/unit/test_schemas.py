"""Unit tests for schema validation."""
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from ledger.models import BookingStatus
from ledger.schemas import BookingCreate, BookingRead, BookingUpdate


class TestBookingSchemas:
    """Test booking request and response schemas."""

    def test_booking_create_parses_iso_dates(self):
        booking = BookingCreate(room_id=1, check_in="2024-06-01", check_out="2024-06-04")

        assert booking.check_in == date(2024, 6, 1)
        assert booking.units == 1
        assert booking.guests is None

    def test_booking_create_rejects_impossible_dates(self):
        with pytest.raises(ValidationError):
            BookingCreate(room_id=1, check_in="2024-02-30", check_out="2024-03-02")

    def test_booking_update_is_partial(self):
        update = BookingUpdate(check_out="2024-06-05")

        assert update.model_dump(exclude_unset=True) == {"check_out": date(2024, 6, 5)}

    def test_booking_read_from_attributes(self):
        """BookingRead reads denormalised display fields off the ORM object."""
        row = SimpleNamespace(
            id=3,
            room_id=1,
            user_id=9,
            check_in=date(2024, 6, 1),
            check_out=date(2024, 6, 4),
            units_booked=2,
            guests=None,
            total_price=Decimal("600.00"),
            status=BookingStatus.REQUESTED,
            created_at=datetime(2024, 1, 1, 12, 0),
            nights=3,
            hotel_id=5,
            hotel_name="Harbour View",
            hotel_location="Lisbon",
            room_type="Double",
        )

        booking = BookingRead.model_validate(row)

        assert booking.total_price == Decimal("600.00")
        assert booking.status == BookingStatus.REQUESTED
        assert booking.model_dump(mode="json")["status"] == "requested"
