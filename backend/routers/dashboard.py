from fastapi import APIRouter, Depends

from backend.errors import ValidationError
from backend.security import require_session
from backend.services import clock
from backend.services.dashboard import build_dashboard_summary

router = APIRouter()


@router.get("/dashboard/summary")
async def dashboard_summary(
    date: str | None = None,
    class_id: str | None = None,
    session: dict = Depends(require_session),
):
    day = clock.parse_local_date(date)
    if date and day is None:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    data = await build_dashboard_summary(session, day=day, class_id=class_id or None)
    return {"success": True, "data": data}
