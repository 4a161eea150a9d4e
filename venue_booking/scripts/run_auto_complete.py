from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_booking.db.session import SessionLocal
from venue_booking.models.booking import Booking
from venue_booking.services import audit_service as audit

logger = logging.getLogger(__name__)


def complete_past_bookings(db: Session, now: datetime | None = None) -> int:
    """Move confirmed bookings whose end has passed to ``completed``.

    Completed bookings keep their interval and still block the calendar.
    Each status change is committed together with its audit entry.
    """
    if now is None:
        now = datetime.now(tz=timezone.utc)

    q = select(Booking).where(Booking.status == "confirmed", Booking.end_at <= now).order_by(Booking.end_at)
    targets = db.execute(q).scalars().all()

    for booking in targets:
        booking.status = "completed"
        audit.write_audit_log(
            db,
            actor_user_id=None,
            action_type=audit.BOOKING_AUTO_COMPLETE,
            target_type="booking",
            target_id=booking.id,
            summary="Marked booking completed",
            diff_json={"venue_id": booking.venue_id, "end_at": booking.end_at},
            commit=False,
        )
        db.commit()
    return len(targets)


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        count = complete_past_bookings(db)
        logger.info("completed %d past bookings", count)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
