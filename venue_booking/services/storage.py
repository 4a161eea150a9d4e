from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import ContextManager, Iterator, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from venue_booking.core.config import get_settings
from venue_booking.core.errors import ConcurrencyConflictError
from venue_booking.core.timeutils import as_utc
from venue_booking.models.blackout import Blackout
from venue_booking.models.booking import Booking
from venue_booking.models.venue import Venue
from venue_booking.models.weekly_rule import WeeklyRule
from venue_booking.schemas.booking import CandidateBooking, ConfirmedBooking
from venue_booking.schemas.venue_schedule import BlackoutPeriod, VenueSchedule, WeeklyRuleIn

logger = logging.getLogger(__name__)

NO_OVERLAP_CONSTRAINT = "bookings_no_overlap"


class BookingStorage(Protocol):
    """The narrow persistence surface the availability engine depends on."""

    def get_venue_schedule(self, venue_id: str) -> VenueSchedule | None: ...

    def get_overlapping_bookings(self, venue_id: str, start_at: datetime, end_at: datetime) -> list[ConfirmedBooking]: ...

    def insert_booking(self, candidate: CandidateBooking, price: Decimal, buffer_minutes: int) -> ConfirmedBooking: ...

    def admission(self, venue_id: str) -> ContextManager[None]: ...

    def get_booking(self, booking_id: str) -> ConfirmedBooking | None: ...

    def mark_cancelled(self, booking_id: str, reason: str, at: datetime) -> ConfirmedBooking: ...


def venue_to_schedule(venue: Venue, rules: list[WeeklyRule], blackouts: list[Blackout]) -> VenueSchedule:
    settings = get_settings()
    min_minutes = venue.min_booking_minutes
    if min_minutes is None:
        min_minutes = settings.default_min_booking_minutes
    buffer_minutes = venue.buffer_minutes
    if buffer_minutes is None:
        buffer_minutes = settings.default_buffer_minutes
    return VenueSchedule(
        venue_id=venue.id,
        status=venue.status,
        capacity=venue.capacity,
        min_booking_minutes=min_minutes,
        max_booking_minutes=venue.max_booking_minutes,
        buffer_minutes=buffer_minutes,
        base_hourly_price=venue.base_hourly_price,
        timezone=venue.timezone or settings.venue_timezone,
        weekly_rules=[WeeklyRuleIn(day_of_week=r.day_of_week, open_time=r.open_time, close_time=r.close_time) for r in rules],
        blackouts=[BlackoutPeriod(start_at=b.start_at, end_at=b.end_at, reason=b.reason) for b in blackouts],
    )


class SqlAlchemyBookingStorage:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_venue_schedule(self, venue_id: str) -> VenueSchedule | None:
        venue = self.db.get(Venue, venue_id)
        if venue is None:
            return None
        rules = self.db.execute(
            select(WeeklyRule).where(WeeklyRule.venue_id == venue_id).order_by(WeeklyRule.day_of_week)
        ).scalars().all()
        blackouts = self.db.execute(
            select(Blackout).where(Blackout.venue_id == venue_id).order_by(Blackout.start_at)
        ).scalars().all()
        return venue_to_schedule(venue, list(rules), list(blackouts))

    def get_overlapping_bookings(self, venue_id: str, start_at: datetime, end_at: datetime) -> list[ConfirmedBooking]:
        q = (
            select(Booking)
            .where(Booking.venue_id == venue_id)
            .where(Booking.status != "cancelled")
            .where(Booking.start_at < as_utc(end_at))
            .where(Booking.end_at > as_utc(start_at))
            .order_by(Booking.start_at)
        )
        return [ConfirmedBooking.model_validate(b) for b in self.db.execute(q).scalars().all()]

    @contextmanager
    def admission(self, venue_id: str) -> Iterator[None]:
        """Transaction for one admission; holds the venue row lock until commit."""
        try:
            self.db.execute(select(Venue.id).where(Venue.id == venue_id).with_for_update())
            yield
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("booking_insert_integrity_error", extra={"venue_id": venue_id, "error": str(exc.orig)})
            raise ConcurrencyConflictError(
                "This time slot was just booked by someone else",
                details={"venue_id": venue_id, "constraint": _constraint_name(exc)},
            ) from exc
        except Exception:
            self.db.rollback()
            raise

    def insert_booking(self, candidate: CandidateBooking, price: Decimal, buffer_minutes: int) -> ConfirmedBooking:
        booking = Booking(
            venue_id=candidate.venue_id,
            guest_id=candidate.guest_id,
            start_at=candidate.start_at,
            end_at=candidate.end_at,
            blocked_until=candidate.end_at + timedelta(minutes=buffer_minutes),
            guest_count=candidate.guest_count,
            total_price=price,
            status="confirmed",
            special_requests=candidate.special_requests,
        )
        self.db.add(booking)
        self.db.flush()
        return ConfirmedBooking.model_validate(booking)

    def shrink_blocked_until(self, venue_id: str, buffer_minutes: int) -> int:
        """Cap ``blocked_until`` of live bookings at ``end_at + buffer_minutes``.

        Run when a venue's buffer goes down, in the same transaction as the
        venue update. Shrinking never creates an overlap. Raising the buffer
        needs no rewrite: admission already keeps new bookings that far apart.
        """
        bookings = self.db.execute(
            select(Booking).where(Booking.venue_id == venue_id).where(Booking.status != "cancelled")
        ).scalars().all()
        changed = 0
        for booking in bookings:
            limit = booking.end_at + timedelta(minutes=buffer_minutes)
            if booking.blocked_until > limit:
                booking.blocked_until = limit
                changed += 1
        return changed

    def get_booking(self, booking_id: str) -> ConfirmedBooking | None:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            return None
        return ConfirmedBooking.model_validate(booking)

    def mark_cancelled(self, booking_id: str, reason: str, at: datetime) -> ConfirmedBooking:
        booking = self.db.get(Booking, booking_id)
        booking.status = "cancelled"
        booking.cancel_reason = reason[:255]
        booking.cancelled_at = at
        self.db.commit()
        return ConfirmedBooking.model_validate(booking)


def _constraint_name(exc: IntegrityError) -> str:
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", "") if diag is not None else ""
    if not name and NO_OVERLAP_CONSTRAINT in str(exc.orig):
        name = NO_OVERLAP_CONSTRAINT
    return name or ""
