from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_booking.core.deps import get_db
from venue_booking.models.audit_log import AuditLog
from venue_booking.schemas.audit import AuditLogOut

router = APIRouter()


@router.get("/audit-logs", response_model=list[AuditLogOut])
def list_audit_logs(
    from_: datetime | None = Query(default=None, alias="from"),
    to: datetime | None = None,
    actor_user_id: str | None = None,
    action_type: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    limit: int = Query(default=500, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Newest first. Exact-match filters are ANDed."""
    conditions = []
    if from_:
        conditions.append(AuditLog.created_at >= from_)
    if to:
        conditions.append(AuditLog.created_at <= to)
    for column, value in (
        (AuditLog.actor_user_id, actor_user_id),
        (AuditLog.action_type, action_type),
        (AuditLog.target_type, target_type),
        (AuditLog.target_id, target_id),
    ):
        if value:
            conditions.append(column == value)

    q = select(AuditLog).where(*conditions).order_by(AuditLog.created_at.desc()).limit(limit)
    return db.execute(q).scalars().all()
