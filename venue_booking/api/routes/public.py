from __future__ import annotations

from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from venue_booking.core.deps import get_actor_id, get_admission_service, get_db, get_resolver
from venue_booking.core.errors import NotFoundError
from venue_booking.core.timeutils import as_utc
from venue_booking.schemas.availability import AvailabilityResult, BookingInterval, FreeWindowsResponse
from venue_booking.schemas.booking import BookingCancelRequest, BookingCreate, CancellationOut, ConfirmedBooking
from venue_booking.services import audit_service as audit
from venue_booking.services.availability_service import AvailabilityResolver
from venue_booking.services.booking_service import BookingAdmissionService

router = APIRouter()


def _schedule_or_404(resolver: AvailabilityResolver, venue_id: str):
    schedule = resolver.storage.get_venue_schedule(venue_id)
    if schedule is None:
        raise NotFoundError("Venue not found", details={"venue_id": venue_id})
    return schedule


@router.get("/venues/{venue_id}/availability", response_model=AvailabilityResult)
def check_availability(
    venue_id: str,
    start_at: datetime,
    duration_minutes: int = Query(gt=0, le=24 * 60),
    resolver: AvailabilityResolver = Depends(get_resolver),
):
    schedule = _schedule_or_404(resolver, venue_id)
    start = as_utc(start_at)
    interval = BookingInterval(start_at=start, end_at=start + timedelta(minutes=duration_minutes))
    return resolver.is_available(schedule, interval)


@router.get("/venues/{venue_id}/free-windows", response_model=FreeWindowsResponse)
def free_windows(venue_id: str, day: date, resolver: AvailabilityResolver = Depends(get_resolver)):
    schedule = _schedule_or_404(resolver, venue_id)
    return FreeWindowsResponse(venue_id=venue_id, windows=resolver.free_windows(schedule, day))


@router.post("/bookings", response_model=ConfirmedBooking, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    service: BookingAdmissionService = Depends(get_admission_service),
    actor_id: str | None = Depends(get_actor_id),
):
    candidate = payload.to_candidate()
    if not candidate.guest_id and actor_id:
        candidate.guest_id = actor_id

    def record(booking: ConfirmedBooking) -> None:
        # Same session as the storage, so it commits with the booking
        audit.write_audit_log(
            db,
            actor_user_id=actor_id,
            action_type=audit.BOOKING_CREATE,
            target_type="booking",
            target_id=booking.id,
            summary="Booking admitted",
            diff_json={
                "venue_id": booking.venue_id,
                "start_at": booking.start_at,
                "end_at": booking.end_at,
                "total_price": booking.total_price,
            },
            request=request,
            commit=False,
        )

    return service.create_booking_with_retry(candidate, on_admitted=record)


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationOut)
def cancel_booking(
    booking_id: str,
    payload: BookingCancelRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: BookingAdmissionService = Depends(get_admission_service),
    actor_id: str | None = Depends(get_actor_id),
):
    out = service.cancel_booking(booking_id, reason=payload.reason, actor_id=actor_id)

    audit.write_audit_log(
        db,
        actor_user_id=actor_id,
        action_type=audit.BOOKING_CANCEL,
        target_type="booking",
        target_id=booking_id,
        summary="Booking cancelled",
        diff_json={"refund_amount": out.refund_amount, "cancel_reason": payload.reason},
        request=request,
    )
    return out
