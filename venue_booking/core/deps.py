from __future__ import annotations

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from venue_booking.db.session import SessionLocal
from venue_booking.services.availability_service import AvailabilityResolver
from venue_booking.services.booking_service import BookingAdmissionService
from venue_booking.services.storage import SqlAlchemyBookingStorage


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_storage(db: Session = Depends(get_db)) -> SqlAlchemyBookingStorage:
    return SqlAlchemyBookingStorage(db)


def get_resolver(storage: SqlAlchemyBookingStorage = Depends(get_storage)) -> AvailabilityResolver:
    return AvailabilityResolver(storage)


def get_admission_service(storage: SqlAlchemyBookingStorage = Depends(get_storage)) -> BookingAdmissionService:
    return BookingAdmissionService(storage)


def get_actor_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Caller identity as forwarded by the authenticating gateway."""
    return x_user_id
