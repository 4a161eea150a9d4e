from __future__ import annotations

import uuid
from datetime import time

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from venue_booking.db.base import Base
from venue_booking.models._mixins import TimestampMixin


class WeeklyRule(Base, TimestampMixin):
    __tablename__ = "weekly_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    venue_id: Mapped[str] = mapped_column(String(36), ForeignKey("venues.id"), nullable=False, index=True)

    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)

    # Wall-clock in the venue timezone
    open_time: Mapped[time] = mapped_column(Time, nullable=False)
    close_time: Mapped[time] = mapped_column(Time, nullable=False)

    __table_args__ = (
        UniqueConstraint("venue_id", "day_of_week", name="uq_weekly_rules_venue_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_weekly_rules_day_of_week"),
        CheckConstraint("open_time < close_time", name="ck_weekly_rules_window"),
    )
