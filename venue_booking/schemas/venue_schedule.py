from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from venue_booking.core.timeutils import as_utc

VENUE_STATUSES = ("draft", "pending_approval", "approved", "rejected")


class WeeklyRuleIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    open_time: time
    close_time: time

    @model_validator(mode="after")
    def _check_window(self) -> "WeeklyRuleIn":
        if self.open_time >= self.close_time:
            raise ValueError("open_time must be before close_time")
        return self


class WeeklyRuleOut(WeeklyRuleIn):
    id: str

    class Config:
        from_attributes = True


class WeeklyRulesReplace(BaseModel):
    rules: list[WeeklyRuleIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_rule_per_day(self) -> "WeeklyRulesReplace":
        _ensure_unique_days(self.rules)
        return self


class BlackoutPeriod(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: str = Field(default="", max_length=255)

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def _check_range(self) -> "BlackoutPeriod":
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be before end_at")
        return self


class BlackoutOut(BlackoutPeriod):
    id: str
    venue_id: str

    class Config:
        from_attributes = True


class VenueSchedule(BaseModel):
    """Read-only view of everything the availability check needs about a venue."""

    venue_id: str
    status: str
    capacity: int = Field(gt=0)
    min_booking_minutes: int | None = Field(default=None, ge=0)
    max_booking_minutes: int | None = Field(default=None, gt=0)
    buffer_minutes: int = Field(default=0, ge=0)
    base_hourly_price: Decimal = Field(ge=0)
    timezone: str = "UTC"
    weekly_rules: list[WeeklyRuleIn] = Field(default_factory=list)
    blackouts: list[BlackoutPeriod] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def _known_status(cls, v: str) -> str:
        if v not in VENUE_STATUSES:
            raise ValueError(f"unknown venue status {v!r}")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        ZoneInfo(v)
        return v

    @model_validator(mode="after")
    def _one_rule_per_day(self) -> "VenueSchedule":
        _ensure_unique_days(self.weekly_rules)
        self.blackouts = sorted(self.blackouts, key=lambda b: b.start_at)
        return self

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"

    def rule_for(self, day_of_week: int) -> WeeklyRuleIn | None:
        for rule in self.weekly_rules:
            if rule.day_of_week == day_of_week:
                return rule
        return None


def _ensure_unique_days(rules: list[WeeklyRuleIn]) -> None:
    seen: set[int] = set()
    for rule in rules:
        if rule.day_of_week in seen:
            raise ValueError(f"more than one weekly rule for day {rule.day_of_week}")
        seen.add(rule.day_of_week)
