from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

from fastapi import Request
from sqlalchemy.orm import Session

from venue_booking.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

BOOKING_CREATE = "BOOKING_CREATE"
BOOKING_CANCEL = "BOOKING_CANCEL"
BOOKING_AUTO_COMPLETE = "BOOKING_AUTO_COMPLETE"
WEEKLY_RULES_REPLACE = "WEEKLY_RULES_REPLACE"
BLACKOUT_CREATE = "BLACKOUT_CREATE"
BLACKOUT_BULK = "BLACKOUT_BULK"
BLACKOUT_DELETE = "BLACKOUT_DELETE"
VENUE_BOOKING_SETTINGS_UPDATE = "VENUE_BOOKING_SETTINGS_UPDATE"

# Free text typed by guests; kept out of the audit trail
REDACTED_KEYS = frozenset({"special_requests", "cancel_reason", "email", "phone"})


def _to_json(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: "<redacted>" if k in REDACTED_KEYS else _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _client_meta(request: Request | None) -> tuple[str, str]:
    if request is None:
        return "", ""
    host = request.client.host if request.client else ""
    return host, request.headers.get("user-agent", "")[:255]


def write_audit_log(
    db: Session,
    *,
    actor_user_id: str | None,
    action_type: str,
    target_type: str = "",
    target_id: str = "",
    summary: str = "",
    diff_json: Mapping[str, Any] | None = None,
    request: Request | None = None,
    commit: bool = True,
) -> AuditLog:
    """Append one audit entry.

    With ``commit=False`` the entry joins the caller's transaction, so a
    state change and its audit row land together.
    """
    ip, ua = _client_meta(request)
    entry = AuditLog(
        actor_user_id=actor_user_id or None,
        action_type=action_type,
        target_type=target_type,
        target_id=str(target_id),
        summary=summary[:255],
        diff_json=_to_json(diff_json) if diff_json is not None else None,
        ip_address=ip,
        user_agent=ua,
    )
    db.add(entry)
    if commit:
        db.commit()
    logger.debug("audit_log_written", extra={"action_type": action_type, "target_id": entry.target_id})
    return entry
