"""Storage interface used by the ledger, with its SQLAlchemy implementation."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, joinedload

from .database import RESERVE_WRITES
from .errors import InvalidRequest, TransientStoreFailure
from .models import ACTIVE_STATUSES, Booking, BookingStatus, Hotel, Room


class BookingStore(Protocol):
    def get_hotel(self, hotel_id: int) -> Optional[Hotel]: ...

    def list_hotel_rooms(self, hotel_id: int) -> List[Room]: ...

    def get_room(self, room_id: int, *, for_update: bool = False) -> Optional[Room]: ...

    def sum_overlapping_units(
        self, room_id: int, check_in: date, check_out: date, exclude_booking_id: Optional[int] = None
    ) -> int: ...

    def insert_booking(self, **fields: Any) -> Booking: ...

    def update_booking(self, booking_id: int, **fields: Any) -> Optional[Booking]: ...

    def get_booking(self, booking_id: int, *, for_update: bool = False) -> Optional[Booking]: ...

    def list_user_bookings(self, user_id: int) -> List[Booking]: ...

    def count_bookings_by_status(self) -> List[Tuple[BookingStatus, int]]: ...

    def summarize_bookings(self, statuses: Sequence[BookingStatus]) -> Tuple[int, Any, Any, int]: ...


class SqlBookingStore:
    """BookingStore backed by a single SQLAlchemy session (one transaction)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def set_lock_timeout(self, seconds: float) -> None:
        # SQLite relies on the connection busy timeout instead
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.execute(text(f"SET LOCAL lock_timeout = {int(seconds * 1000)}"))

    def get_hotel(self, hotel_id: int) -> Optional[Hotel]:
        return self.session.query(Hotel).filter(Hotel.id == hotel_id).first()

    def list_hotel_rooms(self, hotel_id: int) -> List[Room]:
        return (
            self.session.query(Room)
            .options(joinedload(Room.hotel))
            .filter(Room.hotel_id == hotel_id, Room.is_active.is_(True))
            .order_by(Room.price_per_night, Room.id)
            .all()
        )

    def get_room(self, room_id: int, *, for_update: bool = False) -> Optional[Room]:
        query = self.session.query(Room).filter(Room.id == room_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def sum_overlapping_units(
        self, room_id: int, check_in: date, check_out: date, exclude_booking_id: Optional[int] = None
    ) -> int:
        query = self.session.query(func.coalesce(func.sum(Booking.units_booked), 0)).filter(
            Booking.room_id == room_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return int(query.scalar() or 0)

    def insert_booking(self, **fields: Any) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        self.session.flush()
        self.session.refresh(booking)
        return booking

    def update_booking(self, booking_id: int, **fields: Any) -> Optional[Booking]:
        booking = self.get_booking(booking_id)
        if booking is None:
            return None
        for key, value in fields.items():
            setattr(booking, key, value)
        self.session.flush()
        return booking

    def get_booking(self, booking_id: int, *, for_update: bool = False) -> Optional[Booking]:
        query = self.session.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_user_bookings(self, user_id: int) -> List[Booking]:
        return (
            self.session.query(Booking)
            .options(joinedload(Booking.room).joinedload(Room.hotel))
            .filter(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .all()
        )

    def count_bookings_by_status(self) -> List[Tuple[BookingStatus, int]]:
        count = func.count(Booking.id)
        rows = self.session.query(Booking.status, count).group_by(Booking.status).order_by(count.desc()).all()
        return [(booking_status, int(total)) for booking_status, total in rows]

    def summarize_bookings(self, statuses: Sequence[BookingStatus]) -> Tuple[int, Any, Any, int]:
        """Count, revenue, average price and units held by bookings in ``statuses``."""
        count, revenue, average, units = (
            self.session.query(
                func.count(Booking.id),
                func.coalesce(func.sum(Booking.total_price), 0),
                func.avg(Booking.total_price),
                func.coalesce(func.sum(Booking.units_booked), 0),
            )
            .filter(Booking.status.in_(statuses))
            .one()
        )
        return int(count), revenue, average, int(units)


@contextmanager
def open_store(session_factory: Callable[[], Session], *, write: bool = False) -> Iterator[SqlBookingStore]:
    """Run a unit of work: commit on success, roll back on any failure.

    With ``write`` the transaction reserves the database for writing before
    the first read. Lock timeouts, deadlocks and dropped connections come out
    as TransientStoreFailure so callers can retry from scratch.
    """
    session = session_factory()
    try:
        if write:
            session.connection(execution_options={RESERVE_WRITES: True})
        yield SqlBookingStore(session)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise InvalidRequest("Booking violates a storage constraint") from exc
    except (OperationalError, PoolTimeoutError) as exc:
        session.rollback()
        raise TransientStoreFailure() from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            raise TransientStoreFailure() from exc
        raise
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
