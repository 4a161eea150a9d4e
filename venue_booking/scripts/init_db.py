from __future__ import annotations

import logging

from sqlalchemy import text

from venue_booking.db.base import Base
from venue_booking.db.session import engine

# Import models to register with SQLAlchemy
import venue_booking.models  # noqa: F401
from venue_booking.services.storage import NO_OVERLAP_CONSTRAINT

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(level=logging.INFO)

    is_postgres = engine.dialect.name == "postgresql"

    # Extension needed for the exclusion constraint (venue_id WITH =)
    if is_postgres:
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))

    Base.metadata.create_all(bind=engine)

    # Backstop for per-venue admission: no two live bookings may overlap once
    # each is extended by the buffer that applied when it was admitted.
    # Lowering a venue buffer must shrink blocked_until to match, otherwise
    # slots the resolver admits would trip this constraint on every retry
    # (see SqlAlchemyBookingStorage.shrink_blocked_until).
    if is_postgres:
        with engine.begin() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
                {"name": NO_OVERLAP_CONSTRAINT},
            ).first()
            if exists is None:
                conn.execute(
                    text(
                        f"""
                        ALTER TABLE bookings
                        ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT}
                        EXCLUDE USING gist (
                            venue_id WITH =,
                            tstzrange(start_at, blocked_until, '[)') WITH &&
                        )
                        WHERE (status <> 'cancelled');
                        """
                    )
                )
                logger.info("created constraint %s", NO_OVERLAP_CONSTRAINT)
    else:
        logger.warning("database is %s; overlap exclusion constraint not installed", engine.dialect.name)

    logger.info("DB initialized")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
