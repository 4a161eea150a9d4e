from __future__ import annotations

import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, time as dtime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

from venue_booking.core.timeutils import overlaps
from venue_booking.schemas.booking import CandidateBooking, ConfirmedBooking
from venue_booking.schemas.venue_schedule import BlackoutPeriod, VenueSchedule, WeeklyRuleIn

# 2026-10-19 is a Monday
MONDAY = datetime(2026, 10, 19, tzinfo=timezone.utc)


def at(hhmm: str, day: datetime = MONDAY) -> datetime:
    hour, minute = (int(p) for p in hhmm.split(":"))
    return day.replace(hour=hour, minute=minute)


class InMemoryStorage:
    """Dict-backed BookingStorage for engine tests."""

    def __init__(self, lookup_delay: float = 0.0) -> None:
        self.schedules: dict[str, VenueSchedule] = {}
        self.bookings: dict[str, ConfirmedBooking] = {}
        self.lookup_delay = lookup_delay
        self.lookups = 0
        self._mutex = threading.Lock()

    def add_schedule(self, schedule: VenueSchedule) -> VenueSchedule:
        self.schedules[schedule.venue_id] = schedule
        return schedule

    def add_booking(self, venue_id: str, start_at: datetime, end_at: datetime, status: str = "confirmed") -> ConfirmedBooking:
        booking = ConfirmedBooking(
            id=str(uuid.uuid4()),
            venue_id=venue_id,
            guest_id="",
            start_at=start_at,
            end_at=end_at,
            guest_count=1,
            total_price=Decimal("0"),
            status=status,
        )
        self.bookings[booking.id] = booking
        return booking

    def get_venue_schedule(self, venue_id: str) -> VenueSchedule | None:
        return self.schedules.get(venue_id)

    def get_overlapping_bookings(self, venue_id: str, start_at: datetime, end_at: datetime) -> list[ConfirmedBooking]:
        self.lookups += 1
        if self.lookup_delay:
            time.sleep(self.lookup_delay)
        return [
            b
            for b in list(self.bookings.values())
            if b.venue_id == venue_id and b.status != "cancelled" and overlaps(b.start_at, b.end_at, start_at, end_at)
        ]

    @contextmanager
    def admission(self, venue_id: str) -> Iterator[None]:
        yield

    def insert_booking(self, candidate: CandidateBooking, price: Decimal, buffer_minutes: int) -> ConfirmedBooking:
        booking = ConfirmedBooking(
            id=str(uuid.uuid4()),
            venue_id=candidate.venue_id,
            guest_id=candidate.guest_id,
            start_at=candidate.start_at,
            end_at=candidate.end_at,
            guest_count=candidate.guest_count,
            total_price=price,
            status="confirmed",
            special_requests=candidate.special_requests,
        )
        with self._mutex:
            self.bookings[booking.id] = booking
        return booking

    def get_booking(self, booking_id: str) -> ConfirmedBooking | None:
        return self.bookings.get(booking_id)

    def mark_cancelled(self, booking_id: str, reason: str, at: datetime) -> ConfirmedBooking:
        booking = self.bookings[booking_id].model_copy(
            update={"status": "cancelled", "cancel_reason": reason, "cancelled_at": at}
        )
        self.bookings[booking_id] = booking
        return booking


def build_schedule(
    venue_id: str = "venue-1",
    *,
    status: str = "approved",
    capacity: int = 50,
    min_booking_minutes: int | None = None,
    max_booking_minutes: int | None = None,
    buffer_minutes: int = 30,
    base_hourly_price: str = "200.00",
    tz: str = "UTC",
    rules: list[tuple[int, str, str]] | None = None,
    blackouts: list[tuple[datetime, datetime, str]] | None = None,
) -> VenueSchedule:
    if rules is None:
        rules = [(1, "09:00", "17:00")]  # Monday
    return VenueSchedule(
        venue_id=venue_id,
        status=status,
        capacity=capacity,
        min_booking_minutes=min_booking_minutes,
        max_booking_minutes=max_booking_minutes,
        buffer_minutes=buffer_minutes,
        base_hourly_price=Decimal(base_hourly_price),
        timezone=tz,
        weekly_rules=[
            WeeklyRuleIn(day_of_week=d, open_time=dtime.fromisoformat(o), close_time=dtime.fromisoformat(c))
            for d, o, c in rules
        ],
        blackouts=[BlackoutPeriod(start_at=s, end_at=e, reason=r) for s, e, r in (blackouts or [])],
    )


def candidate(start_at: datetime, minutes: float, venue_id: str = "venue-1", guests: int = 10) -> CandidateBooking:
    return CandidateBooking(venue_id=venue_id, start_at=start_at, duration_minutes=minutes, guest_count=guests)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
