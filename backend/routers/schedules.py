from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.security import require_session
from backend.services.schedule_updates import (
    bulk_update_schedules,
    list_weekly_schedules,
    set_daily_override,
)

router = APIRouter()


class BulkScheduleBody(BaseModel):
    updates: Any = None


class DailyOverrideBody(BaseModel):
    child_id: str | None = None
    date: str | None = None
    status: str | None = None


@router.get("/attendance/schedules")
async def weekly_schedules(
    class_id: str | None = None,
    search: str | None = None,
    session: dict = Depends(require_session),
):
    data = await list_weekly_schedules(
        session,
        class_id=class_id or None,
        search=(search or "").strip() or None,
    )
    return {"success": True, "data": data}


@router.post("/attendance/schedules/bulk-update")
async def bulk_update(payload: BulkScheduleBody, session: dict = Depends(require_session)):
    data = await bulk_update_schedules(session, updates=payload.updates)
    return {"success": True, "data": data}


@router.post("/attendance/daily")
async def daily_override(payload: DailyOverrideBody, session: dict = Depends(require_session)):
    data = await set_daily_override(
        session,
        child_id=payload.child_id,
        attendance_date=payload.date,
        status=payload.status,
    )
    return {"success": True, "data": data}
