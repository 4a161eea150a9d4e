# Import all models so that SQLAlchemy registers them for metadata.create_all
from venue_booking.models.venue import Venue
from venue_booking.models.weekly_rule import WeeklyRule
from venue_booking.models.blackout import Blackout
from venue_booking.models.booking import Booking
from venue_booking.models.audit_log import AuditLog

__all__ = [
    "Venue",
    "WeeklyRule",
    "Blackout",
    "Booking",
    "AuditLog",
]
