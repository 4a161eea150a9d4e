from __future__ import annotations

from fastapi import APIRouter

from venue_booking.api.routes import admin_audit, host_schedule, public

api_router = APIRouter()

api_router.include_router(public.router, prefix="/public", tags=["public"])
api_router.include_router(host_schedule.router, prefix="/host/venues", tags=["host-schedule"])
api_router.include_router(admin_audit.router, prefix="/admin", tags=["admin-audit"])
