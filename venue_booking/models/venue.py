from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_booking.db.base import Base
from venue_booking.models._mixins import TimestampMixin


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_id: Mapped[str] = mapped_column(String(36), nullable=False, default="", index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")  # draft/pending_approval/approved/rejected

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_hourly_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # NULL falls back to the configured defaults; max NULL means open-ended
    min_booking_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True, default=30)
    max_booking_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    buffer_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True, default=30)

    # IANA name; empty uses settings.venue_timezone
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
