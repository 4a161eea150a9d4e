from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from venue_booking.core.admission_lock import venue_locks
from venue_booking.core.config import get_settings
from venue_booking.core.deps import get_actor_id, get_db
from venue_booking.core.timeutils import local_bounds
from venue_booking.models.blackout import Blackout
from venue_booking.models.venue import Venue
from venue_booking.models.weekly_rule import WeeklyRule
from venue_booking.schemas.booking import MAX_BOOKING_MINUTES
from venue_booking.schemas.venue_schedule import BlackoutOut, BlackoutPeriod, WeeklyRuleOut, WeeklyRulesReplace
from venue_booking.services import audit_service as audit
from venue_booking.services.storage import SqlAlchemyBookingStorage

router = APIRouter()


class BulkBlackoutCreate(BaseModel):
    date_from: date
    date_to: date
    start_time: time
    end_time: time
    reason: str = Field(default="", max_length=255)


class BookingSettingsUpdate(BaseModel):
    # Omitted fields are left alone; null min/buffer falls back to the defaults
    min_booking_minutes: int | None = Field(default=None, ge=0, le=MAX_BOOKING_MINUTES)
    max_booking_minutes: int | None = Field(default=None, gt=0, le=MAX_BOOKING_MINUTES)
    buffer_minutes: int | None = Field(default=None, ge=0, le=MAX_BOOKING_MINUTES)


class BookingSettingsOut(BaseModel):
    venue_id: str
    min_booking_minutes: int | None
    max_booking_minutes: int | None
    buffer_minutes: int | None
    bookings_adjusted: int = 0


def _venue_or_404(db: Session, venue_id: str) -> Venue:
    v = db.get(Venue, venue_id)
    if not v:
        raise HTTPException(status_code=404, detail="Venue not found")
    return v


@router.get("/{venue_id}/weekly-rules", response_model=list[WeeklyRuleOut])
def list_weekly_rules(venue_id: str, db: Session = Depends(get_db)):
    _venue_or_404(db, venue_id)
    return db.execute(select(WeeklyRule).where(WeeklyRule.venue_id == venue_id).order_by(WeeklyRule.day_of_week)).scalars().all()


@router.put("/{venue_id}/weekly-rules", response_model=list[WeeklyRuleOut])
def replace_weekly_rules(
    venue_id: str,
    payload: WeeklyRulesReplace,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    _venue_or_404(db, venue_id)

    db.execute(delete(WeeklyRule).where(WeeklyRule.venue_id == venue_id))
    rules = [
        WeeklyRule(venue_id=venue_id, day_of_week=r.day_of_week, open_time=r.open_time, close_time=r.close_time)
        for r in payload.rules
    ]
    db.add_all(rules)
    audit.write_audit_log(
        db,
        actor_user_id=actor_id,
        action_type=audit.WEEKLY_RULES_REPLACE,
        target_type="venue",
        target_id=venue_id,
        summary="Replaced weekly operating hours",
        diff_json={"days": sorted(r.day_of_week for r in payload.rules)},
        request=request,
        commit=False,
    )
    db.commit()
    return sorted(rules, key=lambda r: r.day_of_week)


@router.get("/{venue_id}/blackouts", response_model=list[BlackoutOut])
def list_blackouts(
    venue_id: str,
    from_: datetime | None = Query(default=None, alias="from"),
    to: datetime | None = None,
    db: Session = Depends(get_db),
):
    _venue_or_404(db, venue_id)
    q = select(Blackout).where(Blackout.venue_id == venue_id).order_by(Blackout.start_at)
    if from_:
        q = q.where(Blackout.end_at > from_)
    if to:
        q = q.where(Blackout.start_at < to)
    return db.execute(q.limit(1000)).scalars().all()


@router.post("/{venue_id}/blackouts", response_model=BlackoutOut, status_code=status.HTTP_201_CREATED)
def create_blackout(
    venue_id: str,
    payload: BlackoutPeriod,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    _venue_or_404(db, venue_id)

    b = Blackout(venue_id=venue_id, start_at=payload.start_at, end_at=payload.end_at, reason=payload.reason)
    db.add(b)
    db.commit()
    db.refresh(b)

    audit.write_audit_log(db, actor_user_id=actor_id, action_type=audit.BLACKOUT_CREATE, target_type="blackout", target_id=b.id, summary="Created blackout", request=request)
    return b


@router.post("/{venue_id}/blackouts/bulk")
def create_blackouts_bulk(
    venue_id: str,
    payload: BulkBlackoutCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    venue = _venue_or_404(db, venue_id)
    if payload.date_from > payload.date_to:
        raise HTTPException(status_code=400, detail="Invalid date range")
    if payload.start_time >= payload.end_time:
        raise HTTPException(status_code=400, detail="Invalid time range")

    tz = ZoneInfo(venue.timezone or get_settings().venue_timezone)

    created = 0
    d = payload.date_from
    while d <= payload.date_to:
        start_at, end_at = local_bounds(d, payload.start_time, payload.end_time, tz)
        db.add(Blackout(venue_id=venue_id, start_at=start_at, end_at=end_at, reason=payload.reason))
        created += 1
        d = d + timedelta(days=1)

    audit.write_audit_log(
        db,
        actor_user_id=actor_id,
        action_type=audit.BLACKOUT_BULK,
        target_type="venue",
        target_id=venue_id,
        summary="Created blackouts (bulk)",
        diff_json={"count": created, "from": payload.date_from, "to": payload.date_to, "reason": payload.reason},
        request=request,
        commit=False,
    )
    db.commit()

    return {"ok": True, "created": created}


@router.delete("/{venue_id}/blackouts/{blackout_id}")
def delete_blackout(
    venue_id: str,
    blackout_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    b = db.get(Blackout, blackout_id)
    if not b or b.venue_id != venue_id:
        raise HTTPException(status_code=404, detail="Not found")
    db.delete(b)
    db.commit()

    audit.write_audit_log(db, actor_user_id=actor_id, action_type=audit.BLACKOUT_DELETE, target_type="blackout", target_id=blackout_id, summary="Deleted blackout", request=request)
    return {"ok": True}


def _effective_buffer(value: int | None) -> int:
    return get_settings().default_buffer_minutes if value is None else value


@router.patch("/{venue_id}/booking-settings", response_model=BookingSettingsOut)
def update_booking_settings(
    venue_id: str,
    payload: BookingSettingsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    _venue_or_404(db, venue_id)
    changes = payload.model_dump(exclude_unset=True)
    storage = SqlAlchemyBookingStorage(db)

    # Serialised with admissions so no booking slips in between the buffer
    # change and the blocked_until rewrite.
    with venue_locks.hold(venue_id, get_settings().admission_lock_timeout_seconds):
        with storage.admission(venue_id):
            venue = db.get(Venue, venue_id)
            old_buffer = _effective_buffer(venue.buffer_minutes)
            for field, value in changes.items():
                setattr(venue, field, value)

            if (
                venue.min_booking_minutes is not None
                and venue.max_booking_minutes is not None
                and venue.min_booking_minutes > venue.max_booking_minutes
            ):
                raise HTTPException(status_code=400, detail="min_booking_minutes exceeds max_booking_minutes")

            adjusted = 0
            new_buffer = _effective_buffer(venue.buffer_minutes)
            if new_buffer < old_buffer:
                adjusted = storage.shrink_blocked_until(venue_id, new_buffer)

            audit.write_audit_log(
                db,
                actor_user_id=actor_id,
                action_type=audit.VENUE_BOOKING_SETTINGS_UPDATE,
                target_type="venue",
                target_id=venue_id,
                summary="Updated booking settings",
                diff_json={**changes, "bookings_adjusted": adjusted},
                request=request,
                commit=False,
            )

    return BookingSettingsOut(
        venue_id=venue_id,
        min_booking_minutes=venue.min_booking_minutes,
        max_booking_minutes=venue.max_booking_minutes,
        buffer_minutes=venue.buffer_minutes,
        bookings_adjusted=adjusted,
    )
