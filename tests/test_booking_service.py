from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal

import pytest
from pydantic import ValidationError

from venue_booking.core.admission_lock import VenueLockRegistry
from venue_booking.core.errors import (
    BookingValidationError,
    ConcurrencyConflictError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from venue_booking.schemas.booking import CandidateBooking
from venue_booking.services.booking_service import BookingAdmissionService, quote_price, refund_share

from helpers import InMemoryStorage, at, build_schedule, candidate, hours


class TestValidation:
    def test_unknown_venue(self, service):
        with pytest.raises(NotFoundError):
            service.create_booking(candidate(at("10:00"), 60, venue_id="missing"))

    @pytest.mark.parametrize("status", ["draft", "pending_approval", "rejected"])
    def test_unapproved_venue(self, storage, service, status):
        storage.add_schedule(build_schedule(status=status))
        with pytest.raises(InvalidStateError):
            service.create_booking(candidate(at("10:00"), 60))

    def test_non_positive_duration(self, storage, service):
        storage.add_schedule(build_schedule())
        with pytest.raises(BookingValidationError):
            service.create_booking(candidate(at("10:00"), 0))

    def test_default_minimum_duration(self, storage, service):
        storage.add_schedule(build_schedule(min_booking_minutes=None))
        with pytest.raises(BookingValidationError) as exc:
            service.create_booking(candidate(at("10:00"), 20))
        assert exc.value.details["min_booking_minutes"] == 30

    def test_venue_minimum_duration(self, storage, service):
        storage.add_schedule(build_schedule(min_booking_minutes=120))
        with pytest.raises(BookingValidationError) as exc:
            service.create_booking(candidate(at("10:00"), 90))
        assert "120 minutes" in exc.value.message
        assert service.create_booking(candidate(at("10:00"), 120)).status == "confirmed"

    def test_maximum_duration(self, storage, service):
        storage.add_schedule(build_schedule(max_booking_minutes=180))
        with pytest.raises(BookingValidationError):
            service.create_booking(candidate(at("10:00"), 181))
        service.create_booking(candidate(at("10:00"), 180))

    def test_capacity(self, storage, service):
        storage.add_schedule(build_schedule(capacity=20))
        with pytest.raises(BookingValidationError) as exc:
            service.create_booking(candidate(at("10:00"), 60, guests=21))
        assert exc.value.details == {"capacity": 20, "guest_count": 21}
        service.create_booking(candidate(at("10:00"), 60, guests=20))

    def test_zero_guests(self, storage, service):
        storage.add_schedule(build_schedule())
        with pytest.raises(BookingValidationError):
            service.create_booking(candidate(at("10:00"), 60, guests=0))

    @pytest.mark.parametrize("minutes", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_duration_is_rejected(self, storage, service, minutes):
        storage.add_schedule(build_schedule())
        # Skips model validation the way a storage-built candidate could
        raw = CandidateBooking.model_construct(venue_id="venue-1", start_at=at("10:00"), duration_minutes=minutes, guest_count=2)
        with pytest.raises(BookingValidationError):
            service.create_booking(raw)
        assert storage.bookings == {}

    @pytest.mark.parametrize("minutes", [float("nan"), float("inf")])
    def test_candidate_model_refuses_non_finite_duration(self, minutes):
        with pytest.raises(ValidationError):
            candidate(at("10:00"), minutes)

    @pytest.mark.parametrize("minutes", [1e12, 24 * 60 + 1])
    def test_duration_longer_than_a_day(self, storage, service, minutes):
        storage.add_schedule(build_schedule())
        with pytest.raises(BookingValidationError) as exc:
            service.create_booking(candidate(at("10:00"), minutes))
        assert exc.value.details["max_booking_minutes"] == 24 * 60

    def test_validation_happens_before_availability(self, storage, service):
        storage.add_schedule(build_schedule(capacity=5))
        with pytest.raises(BookingValidationError):
            service.create_booking(candidate(at("10:00"), 60, guests=6))
        assert storage.lookups == 0


class TestAdmission:
    def test_conflict_carries_resolver_reason(self, storage, service):
        storage.add_schedule(build_schedule(buffer_minutes=30))
        service.create_booking(candidate(at("10:00"), 120))

        with pytest.raises(ConflictError) as exc:
            service.create_booking(candidate(at("12:15"), 45))
        assert exc.value.message == "time slot conflicts with an existing booking (including 30 minute buffer)"
        assert exc.value.code == "Conflict"

    def test_booking_after_buffer_is_admitted_and_priced(self, storage, service):
        storage.add_schedule(build_schedule(buffer_minutes=30, base_hourly_price="200.00"))
        service.create_booking(candidate(at("10:00"), 120))

        booking = service.create_booking(candidate(at("12:30"), 30))
        assert booking.status == "confirmed"
        assert booking.start_at == at("12:30")
        assert booking.end_at == at("13:00")
        assert booking.total_price == Decimal("100.00")

    def test_outside_hours_is_a_conflict(self, storage, service):
        storage.add_schedule(build_schedule())
        with pytest.raises(ConflictError) as exc:
            service.create_booking(candidate(at("08:00"), 60))
        assert "opens at 09:00" in exc.value.message

    def test_zero_buffer_allows_back_to_back(self, storage, service):
        storage.add_schedule(build_schedule(buffer_minutes=0))
        service.create_booking(candidate(at("10:00"), 60))
        service.create_booking(candidate(at("11:00"), 60))
        assert len(storage.bookings) == 2

    def test_cancelled_booking_frees_the_slot(self, storage, service):
        storage.add_schedule(build_schedule())
        first = service.create_booking(candidate(at("10:00"), 60))
        service.cancel_booking(first.id, now=at("08:00") - hours(100))
        service.create_booking(candidate(at("10:00"), 60))

    def test_schedule_is_reloaded_under_the_lock(self, storage):
        storage.add_schedule(build_schedule())
        service = BookingAdmissionService(storage, locks=VenueLockRegistry(), lock_timeout=1.0)
        base_admission = storage.admission

        @contextmanager
        def admission(venue_id):
            # Host rejects the venue while this request waited for the lock.
            storage.add_schedule(build_schedule(status="rejected"))
            with base_admission(venue_id):
                yield

        storage.admission = admission
        with pytest.raises(InvalidStateError):
            service.create_booking(candidate(at("10:00"), 60))
        assert storage.bookings == {}


    def test_on_admitted_sees_the_new_booking(self, storage, service):
        storage.add_schedule(build_schedule())
        seen = []
        booking = service.create_booking(candidate(at("10:00"), 60), on_admitted=seen.append)
        assert seen == [booking]

    def test_on_admitted_failure_propagates(self, storage, service):
        storage.add_schedule(build_schedule())

        def fail(booking):
            raise RuntimeError("audit store down")

        with pytest.raises(RuntimeError):
            service.create_booking_with_retry(candidate(at("10:00"), 60), on_admitted=fail)


class TestRetry:
    def test_retries_once_after_concurrency_conflict(self):
        class FlakyStorage(InMemoryStorage):
            def __init__(self):
                super().__init__()
                self.attempts = 0

            @contextmanager
            def admission(self, venue_id):
                self.attempts += 1
                if self.attempts == 1:
                    raise ConcurrencyConflictError("Booking conflicted with a concurrent request")
                yield

        storage = FlakyStorage()
        storage.add_schedule(build_schedule())
        service = BookingAdmissionService(storage, locks=VenueLockRegistry(), lock_timeout=1.0)

        booking = service.create_booking_with_retry(candidate(at("10:00"), 60))
        assert booking.status == "confirmed"
        assert storage.attempts == 2

    def test_second_concurrency_conflict_is_raised(self):
        class AlwaysConflicting(InMemoryStorage):
            @contextmanager
            def admission(self, venue_id):
                raise ConcurrencyConflictError("Booking conflicted with a concurrent request")
                yield

        storage = AlwaysConflicting()
        storage.add_schedule(build_schedule())
        service = BookingAdmissionService(storage, locks=VenueLockRegistry(), lock_timeout=1.0)

        with pytest.raises(ConcurrencyConflictError):
            service.create_booking_with_retry(candidate(at("10:00"), 60))

    def test_plain_conflict_is_not_retried(self, storage, service):
        storage.add_schedule(build_schedule())
        service.create_booking(candidate(at("10:00"), 60))
        lookups = storage.lookups
        with pytest.raises(ConflictError):
            service.create_booking_with_retry(candidate(at("10:00"), 60))
        assert storage.lookups == lookups + 1


class TestPricing:
    @pytest.mark.parametrize(
        "minutes, expected",
        [
            (30, "100.00"),
            (45, "200.00"),
            (60, "200.00"),
            (61, "300.00"),
            (150, "500.00"),
        ],
    )
    def test_rounds_up_to_half_hours(self, minutes, expected):
        schedule = build_schedule(base_hourly_price="200.00")
        assert quote_price(schedule, minutes) == Decimal(expected)

    def test_odd_rate_is_rounded_to_cents(self):
        schedule = build_schedule(base_hourly_price="99.99")
        assert quote_price(schedule, 30) == Decimal("50.00")


class TestCancellation:
    @pytest.mark.parametrize(
        "hours_before, share",
        [
            (100, "0.90"),
            (72.5, "0.90"),
            (72, "0.50"),
            (30, "0.50"),
            (24, "0.25"),
            (3, "0.25"),
            (2, "0"),
            (0.5, "0"),
            (-1, "0"),
        ],
    )
    def test_refund_tiers(self, hours_before, share):
        start = at("10:00")
        assert refund_share(start, start - hours(hours_before)) == Decimal(share)

    def test_cancel_returns_refund(self, storage, service):
        storage.add_schedule(build_schedule(base_hourly_price="200.00"))
        booking = service.create_booking(candidate(at("10:00"), 120))

        result = service.cancel_booking(booking.id, "change of plans", now=at("10:00") - hours(48))
        assert result.booking.status == "cancelled"
        assert result.booking.cancel_reason == "change of plans"
        assert result.refund_percentage == Decimal("50")
        assert result.refund_amount == Decimal("200.00")
        assert result.cancellation_fee == Decimal("200.00")

    def test_unknown_booking(self, service):
        with pytest.raises(NotFoundError):
            service.cancel_booking("nope")

    def test_double_cancel(self, storage, service):
        storage.add_schedule(build_schedule())
        booking = service.create_booking(candidate(at("10:00"), 60))
        service.cancel_booking(booking.id, now=at("10:00") - hours(100))
        with pytest.raises(InvalidStateError):
            service.cancel_booking(booking.id, now=at("10:00") - hours(99))

    def test_completed_booking_cannot_be_cancelled(self, storage, service):
        booking = storage.add_booking("venue-1", at("10:00"), at("11:00"), status="completed")
        with pytest.raises(InvalidStateError):
            service.cancel_booking(booking.id)

    def test_guest_can_cancel_own_booking(self, storage, service):
        storage.add_schedule(build_schedule())
        booking = service.create_booking(
            CandidateBooking(venue_id="venue-1", start_at=at("10:00"), duration_minutes=60, guest_count=2, guest_id="alice")
        )
        result = service.cancel_booking(booking.id, actor_id="alice", now=at("10:00") - hours(100))
        assert result.booking.status == "cancelled"

    @pytest.mark.parametrize("actor_id", ["mallory", None])
    def test_other_caller_cannot_cancel(self, storage, service, actor_id):
        storage.add_schedule(build_schedule())
        booking = service.create_booking(
            CandidateBooking(venue_id="venue-1", start_at=at("10:00"), duration_minutes=60, guest_count=2, guest_id="alice")
        )
        with pytest.raises(NotFoundError):
            service.cancel_booking(booking.id, actor_id=actor_id)
        assert storage.get_booking(booking.id).status == "confirmed"
