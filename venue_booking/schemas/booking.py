from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from venue_booking.core.timeutils import as_utc, duration_minutes

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")

# A booking never leaves its local day
MAX_BOOKING_MINUTES = 24 * 60


class CandidateBooking(BaseModel):
    """An admission request. Bounds are checked by the admission service."""

    venue_id: str
    start_at: datetime
    duration_minutes: float = Field(allow_inf_nan=False)
    guest_count: int
    guest_id: str = ""
    special_requests: str = ""

    @field_validator("start_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)


class ConfirmedBooking(BaseModel):
    id: str
    venue_id: str
    guest_id: str
    start_at: datetime
    end_at: datetime
    guest_count: int
    total_price: Decimal
    status: str
    special_requests: str = ""
    created_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str = ""

    class Config:
        from_attributes = True


class BookingCreate(BaseModel):
    venue_id: str
    start_at: datetime
    # Exactly one of end_at / duration_minutes
    end_at: datetime | None = None
    duration_minutes: float | None = Field(default=None, gt=0, le=MAX_BOOKING_MINUTES, allow_inf_nan=False)
    guest_count: int = Field(ge=1, le=100000)
    guest_id: str = Field(default="", max_length=36)
    special_requests: str = Field(default="", max_length=2000)

    @model_validator(mode="after")
    def _one_of_end_or_duration(self) -> "BookingCreate":
        if (self.end_at is None) == (self.duration_minutes is None):
            raise ValueError("provide exactly one of end_at or duration_minutes")
        return self

    def to_candidate(self) -> CandidateBooking:
        if self.end_at is not None:
            minutes = duration_minutes(as_utc(self.start_at), as_utc(self.end_at))
        else:
            minutes = self.duration_minutes
        return CandidateBooking(
            venue_id=self.venue_id,
            start_at=self.start_at,
            duration_minutes=minutes,
            guest_count=self.guest_count,
            guest_id=self.guest_id,
            special_requests=self.special_requests,
        )


class BookingCancelRequest(BaseModel):
    reason: str = Field(default="", max_length=255)


class CancellationOut(BaseModel):
    booking: ConfirmedBooking
    refund_percentage: Decimal
    refund_amount: Decimal
    cancellation_fee: Decimal
