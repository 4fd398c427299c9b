from fastapi import APIRouter

from backend.config import (
    ACTION_TIMESTAMP_TOLERANCE_MINUTES,
    FACILITY_UTC_OFFSET_HOURS,
    LATE_ARRIVAL_THRESHOLD_MINUTES,
    OVERDUE_DEPARTURE_THRESHOLD_MINUTES,
)
from backend.services import clock

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/attendance")
def attendance_config():
    return {
        "late_arrival_threshold_minutes": LATE_ARRIVAL_THRESHOLD_MINUTES,
        "overdue_departure_threshold_minutes": OVERDUE_DEPARTURE_THRESHOLD_MINUTES,
        "facility_utc_offset_hours": FACILITY_UTC_OFFSET_HOURS,
        "action_timestamp_tolerance_minutes": ACTION_TIMESTAMP_TOLERANCE_MINUTES,
        "facility_date": clock.facility_today().isoformat(),
        "facility_time": clock.facility_clock_time(),
    }
