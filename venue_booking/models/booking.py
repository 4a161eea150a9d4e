from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from venue_booking.db.base import Base
from venue_booking.db.types import UTCDateTime
from venue_booking.models._mixins import TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    venue_id: Mapped[str] = mapped_column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    guest_id: Mapped[str] = mapped_column(String(36), nullable=False, default="", index=True)

    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # end_at plus the venue buffer at admission time, capped when the buffer is
    # later lowered; the Postgres exclusion constraint is declared over
    # [start_at, blocked_until)
    blocked_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="confirmed")  # pending/confirmed/cancelled/completed

    special_requests: Mapped[str] = mapped_column(Text, nullable=False, default="")

    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancel_reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")
