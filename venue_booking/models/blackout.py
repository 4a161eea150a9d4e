from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_booking.db.base import Base
from venue_booking.db.types import UTCDateTime
from venue_booking.models._mixins import TimestampMixin


class Blackout(Base, TimestampMixin):
    __tablename__ = "blackouts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    venue_id: Mapped[str] = mapped_column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")
