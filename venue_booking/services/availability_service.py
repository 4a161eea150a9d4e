from __future__ import annotations

import logging
from datetime import date, datetime

from venue_booking.core.timeutils import day_of_week, expand, fmt_hhmm, local_bounds, overlaps
from venue_booking.schemas.availability import AvailabilityResult, BookingInterval, FreeWindow
from venue_booking.schemas.venue_schedule import VenueSchedule
from venue_booking.services.storage import BookingStorage

logger = logging.getLogger(__name__)

REASON_NOT_APPROVED = "venue is not approved for booking"
REASON_NO_HOURS = "no operating hours configured for this day"
REASON_SPANS_MIDNIGHT = "booking must start and end on the same day"


class AvailabilityResolver:
    """Decides whether a venue is free for an interval.

    Holds no state of its own; the storage is only read. Safe to share
    between threads.

    Buffer is applied to the candidate only: the candidate is widened by
    ``buffer_minutes`` on both sides and checked against the raw intervals of
    stored bookings. Because every booking goes through this check at
    admission, any two admitted bookings end up at least ``buffer_minutes``
    apart. Stored bookings are never re-checked when the buffer changes.
    """

    def __init__(self, storage: BookingStorage) -> None:
        self.storage = storage

    def is_available(self, schedule: VenueSchedule, interval: BookingInterval) -> AvailabilityResult:
        if not schedule.is_approved:
            return _unavailable(REASON_NOT_APPROVED)

        tz = schedule.tz
        local_start = interval.start_at.astimezone(tz)
        local_end = interval.end_at.astimezone(tz)

        rule = schedule.rule_for(day_of_week(local_start))
        if rule is None:
            return _unavailable(REASON_NO_HOURS)

        if local_end.date() != local_start.date():
            return _unavailable(REASON_SPANS_MIDNIGHT)

        start_time = local_start.time().replace(tzinfo=None)
        end_time = local_end.time().replace(tzinfo=None)
        if start_time < rule.open_time:
            return _unavailable(f"venue opens at {fmt_hhmm(rule.open_time)} on this day")
        if start_time >= rule.close_time:
            return _unavailable(f"venue closes at {fmt_hhmm(rule.close_time)} on this day")
        if end_time > rule.close_time:
            return _unavailable(f"booking must end by {fmt_hhmm(rule.close_time)} on this day")

        for blackout in schedule.blackouts:
            if overlaps(interval.start_at, interval.end_at, blackout.start_at, blackout.end_at):
                return _unavailable(f"venue is unavailable during this time: {blackout.reason or 'blackout'}")

        buffered_start, buffered_end = expand(interval.start_at, interval.end_at, schedule.buffer_minutes)
        conflicts = self.storage.get_overlapping_bookings(schedule.venue_id, buffered_start, buffered_end)
        if conflicts:
            logger.debug(
                "availability_booking_conflict",
                extra={"venue_id": schedule.venue_id, "conflicts": [b.id for b in conflicts]},
            )
            if schedule.buffer_minutes:
                return _unavailable(
                    f"time slot conflicts with an existing booking (including {schedule.buffer_minutes} minute buffer)"
                )
            return _unavailable("time slot conflicts with an existing booking")

        return AvailabilityResult(available=True)

    def free_windows(self, schedule: VenueSchedule, day: date) -> list[FreeWindow]:
        """Bookable stretches of a local calendar day.

        Starts from the weekly window, then cuts out blackouts and existing
        bookings widened by the buffer. Minimum duration is not applied.
        """
        if not schedule.is_approved:
            return []
        rule = schedule.rule_for(day_of_week(day))
        if rule is None:
            return []

        day_start, day_end = local_bounds(day, rule.open_time, rule.close_time, schedule.tz)

        busy: list[tuple[datetime, datetime]] = [
            (b.start_at, b.end_at) for b in schedule.blackouts if overlaps(day_start, day_end, b.start_at, b.end_at)
        ]
        lookup_start, lookup_end = expand(day_start, day_end, schedule.buffer_minutes)
        for booking in self.storage.get_overlapping_bookings(schedule.venue_id, lookup_start, lookup_end):
            busy.append(expand(booking.start_at, booking.end_at, schedule.buffer_minutes))
        busy.sort()

        windows: list[FreeWindow] = []
        cursor = day_start
        for busy_start, busy_end in busy:
            if busy_start > cursor:
                windows.append(FreeWindow(start_at=cursor, end_at=min(busy_start, day_end)))
            cursor = max(cursor, busy_end)
            if cursor >= day_end:
                break
        if cursor < day_end:
            windows.append(FreeWindow(start_at=cursor, end_at=day_end))
        return windows


def _unavailable(reason: str) -> AvailabilityResult:
    return AvailabilityResult(available=False, reason=reason)
