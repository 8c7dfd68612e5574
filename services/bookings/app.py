from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, List, Type

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ledger.bookings import BookingManager
from ledger.config import get_settings
from ledger.database import Base, engine
from ledger.dependencies import get_booking_manager, get_current_user_id
from ledger.errors import (
    Conflict,
    Forbidden,
    InvalidDateRange,
    InvalidRequest,
    LedgerError,
    NotFound,
    TransientStoreFailure,
)
from ledger.logging_middleware import add_audit_middleware, log_ledger_failure
from ledger.rate_limit import WRITE_LIMIT, apply_rate_limiter, limiter
from ledger.schemas import BookingCreate, BookingRead, BookingStats, BookingUpdate, ErrorBody, RoomAvailability

settings = get_settings()

STATUS_BY_ERROR: Dict[Type[LedgerError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidRequest: status.HTTP_400_BAD_REQUEST,
    InvalidDateRange: status.HTTP_400_BAD_REQUEST,
    Forbidden: status.HTTP_403_FORBIDDEN,
    Conflict: status.HTTP_409_CONFLICT,
    TransientStoreFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorBody},
    status.HTTP_403_FORBIDDEN: {"model": ErrorBody},
    status.HTTP_404_NOT_FOUND: {"model": ErrorBody},
    status.HTTP_409_CONFLICT: {"model": ErrorBody},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorBody},
}


def status_for(exc: LedgerError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    audit_logger = add_audit_middleware(fastapi_app, "bookings")

    @fastapi_app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status_code = status_for(exc)
        log_ledger_failure(audit_logger, request, exc, status_code)
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post(
    "/bookings",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
@limiter.limit(WRITE_LIMIT)
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> BookingRead:
    return manager.create_booking(
        booking_in.room_id,
        user_id,
        booking_in.check_in,
        booking_in.check_out,
        units_requested=booking_in.units,
        guests=booking_in.guests,
    )


@app.get("/bookings/my", response_model=List[BookingRead])
def my_bookings(
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> List[BookingRead]:
    return manager.list_user_bookings(user_id)


@app.get("/bookings/stats", response_model=BookingStats)
def booking_stats(manager: BookingManager = Depends(get_booking_manager)) -> BookingStats:
    return manager.booking_stats()


@app.get("/bookings/{booking_id}", response_model=BookingRead, responses=ERROR_RESPONSES)
def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> BookingRead:
    return manager.get_booking(booking_id, user_id)


@app.patch("/bookings/{booking_id}", response_model=BookingRead, responses=ERROR_RESPONSES)
@limiter.limit(WRITE_LIMIT)
def update_booking(
    request: Request,
    booking_id: int,
    booking_update: BookingUpdate,
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> BookingRead:
    return manager.update_booking(
        booking_id,
        user_id,
        new_check_in=booking_update.check_in,
        new_check_out=booking_update.check_out,
        new_units=booking_update.units,
        new_guests=booking_update.guests,
    )


@app.post("/bookings/{booking_id}/cancel", response_model=BookingRead, responses=ERROR_RESPONSES)
@limiter.limit(WRITE_LIMIT)
def cancel_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> BookingRead:
    return manager.cancel_booking(booking_id, user_id)


@app.post("/bookings/{booking_id}/confirm", response_model=BookingRead, responses=ERROR_RESPONSES)
@limiter.limit(WRITE_LIMIT)
def confirm_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: BookingManager = Depends(get_booking_manager),
) -> BookingRead:
    return manager.confirm_booking(booking_id, user_id)


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability, responses=ERROR_RESPONSES)
def room_availability(
    room_id: int,
    check_in: date = Query(...),
    check_out: date = Query(...),
    manager: BookingManager = Depends(get_booking_manager),
) -> RoomAvailability:
    return manager.room_availability(room_id, check_in, check_out)


@app.get("/hotels/{hotel_id}/availability", response_model=List[RoomAvailability], responses=ERROR_RESPONSES)
def hotel_availability(
    hotel_id: int,
    check_in: date = Query(...),
    check_out: date = Query(...),
    manager: BookingManager = Depends(get_booking_manager),
) -> List[RoomAvailability]:
    return manager.hotel_availability(hotel_id, check_in, check_out)
