import os
from datetime import date
from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("LOG_DIR", "./test-logs")

from ledger.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from ledger.bookings import BookingManager  # noqa: E402
from ledger.database import Base, SessionLocal, engine  # noqa: E402
from ledger.dependencies import get_booking_manager  # noqa: E402
from ledger.models import Booking, BookingStatus, Hotel, Room  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402

# every manager built by these fixtures believes it is this day
TODAY = date(2024, 1, 1)


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def manager() -> BookingManager:
    return BookingManager(SessionLocal, clock=lambda: TODAY)


@pytest.fixture()
def hotel(db_session) -> Hotel:
    hotel = Hotel(name="Harbour View", location="Lisbon")
    db_session.add(hotel)
    db_session.commit()
    return hotel


@pytest.fixture()
def room_factory(db_session, hotel) -> Callable[..., Room]:
    def make_room(**overrides) -> Room:
        fields = {
            "hotel_id": hotel.id,
            "room_type": "Double",
            "price_per_night": Decimal("100.00"),
            "total_units": 1,
            "capacity": 2,
            "is_active": True,
        }
        fields.update(overrides)
        room = Room(**fields)
        db_session.add(room)
        db_session.commit()
        return room

    return make_room


@pytest.fixture()
def single_room(room_factory) -> Room:
    return room_factory(room_type="Single", total_units=1)


@pytest.fixture()
def family_room(room_factory) -> Room:
    return room_factory(room_type="Family", total_units=3, capacity=4, price_per_night=Decimal("180.00"))


@pytest.fixture()
def add_booking(db_session) -> Callable[..., Booking]:
    """Insert a booking row directly, bypassing every check."""

    def insert(room: Room, check_in: date, check_out: date, units: int = 1, **overrides) -> Booking:
        fields = {
            "room_id": room.id,
            "user_id": 1,
            "check_in": check_in,
            "check_out": check_out,
            "units_booked": units,
            "total_price": Decimal("0.00"),
            "status": BookingStatus.REQUESTED,
        }
        fields.update(overrides)
        booking = Booking(**fields)
        db_session.add(booking)
        db_session.commit()
        return booking

    return insert


@pytest.fixture()
def bookings_client(manager) -> Generator[TestClient, None, None]:
    bookings_app.dependency_overrides[get_booking_manager] = lambda: manager
    with TestClient(bookings_app) as client:
        yield client
    bookings_app.dependency_overrides.clear()
