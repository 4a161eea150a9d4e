from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator, model_validator

from venue_booking.core.timeutils import as_utc


class BookingInterval(BaseModel):
    start_at: datetime
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def _check_range(self) -> "BookingInterval":
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be before end_at")
        return self


class AvailabilityResult(BaseModel):
    available: bool
    reason: str | None = None


class FreeWindow(BaseModel):
    start_at: datetime
    end_at: datetime


class FreeWindowsResponse(BaseModel):
    venue_id: str
    windows: list[FreeWindow]
