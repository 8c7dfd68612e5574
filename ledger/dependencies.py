"""Reusable FastAPI dependencies for caller identity and the booking manager."""
from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import user_id_from_token
from .bookings import BookingManager

bearer_scheme = HTTPBearer(scheme_name="JWT", description="Bearer token whose subject is the user id.")


def get_current_user_id(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> int:
    return user_id_from_token(credentials.credentials)


@lru_cache
def get_booking_manager() -> BookingManager:
    """One manager per process so every request shares the same room locks."""

    return BookingManager()
