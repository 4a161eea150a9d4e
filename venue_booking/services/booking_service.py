from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from venue_booking.core.admission_lock import VenueLockRegistry, venue_locks
from venue_booking.core.config import get_settings
from venue_booking.core.errors import (
    BookingValidationError,
    ConcurrencyConflictError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from venue_booking.schemas.availability import BookingInterval
from venue_booking.schemas.booking import MAX_BOOKING_MINUTES, CandidateBooking, CancellationOut, ConfirmedBooking
from venue_booking.schemas.venue_schedule import VenueSchedule
from venue_booking.services.availability_service import AvailabilityResolver
from venue_booking.services.storage import BookingStorage

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# (hours before start, share refunded), checked in order
REFUND_POLICY: tuple[tuple[int, Decimal], ...] = (
    (72, Decimal("0.90")),
    (24, Decimal("0.50")),
    (2, Decimal("0.25")),
)


def quote_price(schedule: VenueSchedule, duration_minutes: float) -> Decimal:
    """Half-hour increments, rounded up, at the venue's hourly rate."""
    hours = Decimal(math.ceil(duration_minutes / 30)) * Decimal("0.5")
    return (hours * schedule.base_hourly_price).quantize(CENTS, rounding=ROUND_HALF_UP)


def refund_share(start_at: datetime, now: datetime) -> Decimal:
    hours_until = (start_at - now).total_seconds() / 3600
    for threshold, share in REFUND_POLICY:
        if hours_until > threshold:
            return share
    return Decimal("0")


class BookingAdmissionService:
    """Validates, checks availability for, prices and commits bookings."""

    def __init__(
        self,
        storage: BookingStorage,
        resolver: AvailabilityResolver | None = None,
        locks: VenueLockRegistry | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        self.storage = storage
        self.resolver = resolver or AvailabilityResolver(storage)
        self.locks = locks or venue_locks
        if lock_timeout is None:
            lock_timeout = get_settings().admission_lock_timeout_seconds
        self.lock_timeout = lock_timeout

    def create_booking(
        self,
        candidate: CandidateBooking,
        on_admitted: Callable[[ConfirmedBooking], None] | None = None,
    ) -> ConfirmedBooking:
        """Admit a booking or raise one of the admission errors.

        ``on_admitted`` runs inside the admission transaction right after the
        insert; if it raises, the booking is rolled back with it.

        Raises:
            NotFoundError: venue does not exist
            InvalidStateError: venue is not approved
            BookingValidationError: duration or guest count out of bounds
            ConflictError: interval is not available (message is the reason)
            ConcurrencyConflictError: lost a race for the venue; retry once
        """
        schedule = self._load_schedule(candidate.venue_id)
        self._validate(schedule, candidate)

        with self.locks.hold(candidate.venue_id, self.lock_timeout):
            with self.storage.admission(candidate.venue_id):
                # Re-read under the lock so status and schedule edits made
                # while we waited are seen.
                schedule = self._load_schedule(candidate.venue_id)
                interval = BookingInterval(start_at=candidate.start_at, end_at=candidate.end_at)
                result = self.resolver.is_available(schedule, interval)
                if not result.available:
                    logger.info(
                        "booking_rejected",
                        extra={"venue_id": candidate.venue_id, "start_at": candidate.start_at.isoformat(), "reason": result.reason},
                    )
                    raise ConflictError(
                        result.reason or "venue is not available for the selected time",
                        details={"venue_id": candidate.venue_id, "start_at": candidate.start_at.isoformat()},
                    )

                price = quote_price(schedule, candidate.duration_minutes)
                booking = self.storage.insert_booking(candidate, price, schedule.buffer_minutes)
                if on_admitted is not None:
                    on_admitted(booking)

        logger.info(
            "booking_admitted",
            extra={"booking_id": booking.id, "venue_id": booking.venue_id, "total_price": str(booking.total_price)},
        )
        return booking

    def create_booking_with_retry(
        self,
        candidate: CandidateBooking,
        on_admitted: Callable[[ConfirmedBooking], None] | None = None,
    ) -> ConfirmedBooking:
        try:
            return self.create_booking(candidate, on_admitted)
        except ConcurrencyConflictError:
            logger.info("booking_admission_retry", extra={"venue_id": candidate.venue_id})
            return self.create_booking(candidate, on_admitted)

    def cancel_booking(
        self,
        booking_id: str,
        reason: str = "",
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> CancellationOut:
        """Cancel and quote the refund.

        A booking made by a known guest can only be cancelled by that guest;
        anyone else gets the same answer as for a missing booking.
        """
        if now is None:
            now = datetime.now(tz=timezone.utc)

        booking = self.storage.get_booking(booking_id)
        if booking is None or (booking.guest_id and booking.guest_id != actor_id):
            raise NotFoundError(
                "Booking not found or you do not have permission to cancel it",
                details={"booking_id": booking_id},
            )
        if booking.status == "cancelled":
            raise InvalidStateError("Booking is already cancelled", details={"booking_id": booking_id})
        if booking.status == "completed":
            raise InvalidStateError("Cannot cancel a completed booking", details={"booking_id": booking_id})

        share = refund_share(booking.start_at, now)
        refund = (booking.total_price * share).quantize(CENTS, rounding=ROUND_HALF_UP)
        cancelled = self.storage.mark_cancelled(booking_id, reason, now)

        logger.info("booking_cancelled", extra={"booking_id": booking_id, "refund_amount": str(refund)})
        return CancellationOut(
            booking=cancelled,
            refund_percentage=share * 100,
            refund_amount=refund,
            cancellation_fee=booking.total_price - refund,
        )

    def _load_schedule(self, venue_id: str) -> VenueSchedule:
        schedule = self.storage.get_venue_schedule(venue_id)
        if schedule is None:
            raise NotFoundError("Venue not found", details={"venue_id": venue_id})
        if not schedule.is_approved:
            raise InvalidStateError("Venue is not available for booking", details={"venue_id": venue_id, "status": schedule.status})
        return schedule

    def _validate(self, schedule: VenueSchedule, candidate: CandidateBooking) -> None:
        minutes = candidate.duration_minutes
        if not math.isfinite(minutes):
            raise BookingValidationError("Booking duration must be a finite number of minutes")
        if minutes <= 0:
            raise BookingValidationError("Booking must end after it starts")
        if minutes > MAX_BOOKING_MINUTES:
            raise BookingValidationError(
                "Booking cannot be longer than one day",
                details={"max_booking_minutes": MAX_BOOKING_MINUTES, "duration_minutes": minutes},
            )

        min_minutes = schedule.min_booking_minutes
        if min_minutes is None:
            min_minutes = get_settings().default_min_booking_minutes
        if minutes < min_minutes:
            raise BookingValidationError(
                f"Minimum booking duration is {min_minutes} minutes",
                details={"min_booking_minutes": min_minutes, "duration_minutes": minutes},
            )
        if schedule.max_booking_minutes is not None and minutes > schedule.max_booking_minutes:
            raise BookingValidationError(
                f"Maximum booking duration is {schedule.max_booking_minutes} minutes",
                details={"max_booking_minutes": schedule.max_booking_minutes, "duration_minutes": minutes},
            )

        if candidate.guest_count < 1:
            raise BookingValidationError("At least one guest is required")
        if candidate.guest_count > schedule.capacity:
            raise BookingValidationError(
                f"Venue capacity is {schedule.capacity} people",
                details={"capacity": schedule.capacity, "guest_count": candidate.guest_count},
            )
