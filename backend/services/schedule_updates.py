"""
Staff-side schedule management.

Weekly patterns are edited in bulk; one-day overrides ("scheduled" / "absent")
can be registered for any date, including future ones.
"""

import logging
import sqlite3
from datetime import date, datetime
from typing import Any

from starlette.concurrency import run_in_threadpool

from backend.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from backend.services import clock
from backend.services.schedule import (
    WEEKDAY_KEYS,
    calculate_grade,
    format_grade_label,
    select_pattern,
    to_hhmm,
)
from database import db
from database.db import ChildRecord, SchedulePattern

logger = logging.getLogger(__name__)

DAILY_OVERRIDE_STATUSES = ("scheduled", "absent")


def _require_facility(session: dict[str, Any]) -> str:
    facility_id = session.get("facility_id")
    if not facility_id:
        raise AuthenticationError("Unauthorized")
    return facility_id


def _clean_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _schedule_row(child: ChildRecord, pattern: SchedulePattern | None, today: date) -> dict[str, Any]:
    current_class = next((c for c in child.get("classes") or [] if c.get("is_current")), None)
    grade = calculate_grade(child.get("birth_date"), child.get("grade_add"), today)
    return {
        "child_id": child["id"],
        "name": " ".join(p for p in (child.get("family_name"), child.get("given_name")) if p),
        "kana": " ".join(p for p in (child.get("family_name_kana"), child.get("given_name_kana")) if p),
        "class_id": current_class["class_id"] if current_class else None,
        "class_name": current_class["name"] if current_class else "",
        "age_group": (current_class or {}).get("age_group") or "",
        "grade": grade,
        "grade_label": format_grade_label(grade),
        "photo_url": child.get("photo_url"),
        "schedule": {key: bool(pattern[key]) if pattern else False for key in WEEKDAY_KEYS},
        "pickup_time": to_hhmm(pattern.get("pickup_time")) if pattern else None,
        "valid_from": pattern.get("valid_from") if pattern else None,
        "updated_at": pattern.get("updated_at") if pattern else None,
    }


async def list_weekly_schedules(
    session: dict[str, Any],
    *,
    class_id: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    facility_id = _require_facility(session)
    today = clock.facility_today()

    children = await run_in_threadpool(
        lambda: db.list_enrolled_children(facility_id, class_id=class_id, search=search)
    )
    patterns = await run_in_threadpool(db.get_schedule_patterns, [c["id"] for c in children], today)

    by_child: dict[str, list[SchedulePattern]] = {}
    for pattern in patterns:
        by_child.setdefault(pattern["child_id"], []).append(pattern)

    rows = [_schedule_row(child, select_pattern(by_child.get(child["id"], []), today), today) for child in children]
    return {"children": rows, "total": len(rows)}


def _normalize_pickup_time(value: Any) -> str | None:
    hhmm = to_hhmm(value) if isinstance(value, str) else None
    if hhmm is None:
        return None
    try:
        datetime.strptime(hhmm, "%H:%M")
    except ValueError:
        return None
    return hhmm


def _parse_schedule_update(update: Any) -> tuple[str, dict[str, bool], str | None, bool]:
    """Returns (child_id, days, pickup_time, has_pickup_time); raises ValidationError."""
    if not isinstance(update, dict):
        raise ValidationError("Invalid update entry")

    child_id = _clean_str(update.get("child_id"))
    if not child_id:
        raise ValidationError("child_id is required")

    schedule = update.get("schedule")
    if not isinstance(schedule, dict):
        raise ValidationError("schedule is required")
    days = {key: bool(schedule.get(key)) for key in WEEKDAY_KEYS}

    has_pickup_time = "pickup_time" in update
    pickup_time = None
    if has_pickup_time and update["pickup_time"] is not None:
        pickup_time = _normalize_pickup_time(update["pickup_time"])
        if pickup_time is None:
            raise ValidationError("Invalid pickup_time")

    return child_id, days, pickup_time, has_pickup_time


async def _apply_schedule_update(facility_id: str, update: Any, effective_date: str) -> dict[str, Any]:
    raw_child_id = update.get("child_id") if isinstance(update, dict) else None
    try:
        child_id, days, pickup_time, has_pickup_time = _parse_schedule_update(update)
    except ValidationError as exc:
        return {"child_id": raw_child_id, "status": "failed", "error": exc.message}

    child = await run_in_threadpool(db.get_child_for_facility, child_id, facility_id)
    if child is None:
        return {"child_id": child_id, "status": "failed", "error": "Child not found or access denied"}

    try:
        pattern_id, created = await run_in_threadpool(
            lambda: db.save_weekly_pattern(
                child_id=child_id,
                days=days,
                effective_date=effective_date,
                pickup_time=pickup_time,
                update_pickup_time=has_pickup_time,
            )
        )
    except sqlite3.Error:
        logger.exception("Weekly schedule update failed for child %s", child_id)
        return {"child_id": child_id, "status": "failed", "error": "Failed to update schedule"}

    return {"child_id": child_id, "status": "success", "pattern_id": pattern_id, "created": created}


async def bulk_update_schedules(session: dict[str, Any], *, updates: Any) -> dict[str, Any]:
    """
    Upsert the weekly pattern of each listed child.

    Entries are independent: a rejected child is reported in `results` and the
    rest are still applied. New patterns start today.
    """
    facility_id = _require_facility(session)
    if not isinstance(updates, list):
        raise ValidationError("Invalid request: updates array is required")

    effective_date = clock.facility_today().isoformat()
    results = [await _apply_schedule_update(facility_id, update, effective_date) for update in updates]

    updated_count = sum(1 for r in results if r["status"] == "success")
    logger.info("Weekly schedules updated: %s ok, %s failed", updated_count, len(results) - updated_count)
    return {
        "updated_count": updated_count,
        "failed_count": len(results) - updated_count,
        "results": results,
    }


async def set_daily_override(
    session: dict[str, Any],
    *,
    child_id: Any,
    attendance_date: Any,
    status: Any,
) -> dict[str, Any]:
    """Register "scheduled" or "absent" for one child on one date."""
    facility_id = _require_facility(session)

    clean_child_id = _clean_str(child_id)
    clean_date = _clean_str(attendance_date)
    clean_status = _clean_str(status)
    if not clean_child_id or not clean_date or not clean_status:
        raise ValidationError("child_id, date and status are required")
    if clean_status not in DAILY_OVERRIDE_STATUSES:
        raise ValidationError("Invalid status")

    day = clock.parse_local_date(clean_date)
    if day is None:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")

    child = await run_in_threadpool(db.get_child_for_facility, clean_child_id, facility_id)
    if child is None:
        raise NotFoundError("Child not found or access denied")

    if clean_status == "absent" and day == clock.facility_today():
        open_log = await run_in_threadpool(db.get_open_log, clean_child_id, facility_id, day)
        if open_log:
            raise ConflictError("Child is already checked in")

    try:
        record = await run_in_threadpool(
            lambda: db.upsert_daily_attendance(
                child_id=clean_child_id,
                facility_id=facility_id,
                attendance_date=day.isoformat(),
                status=clean_status,
                user_id=session.get("sub"),
            )
        )
    except sqlite3.Error:
        logger.exception("Daily override failed for child %s on %s", clean_child_id, day)
        raise StorageError("Failed to update attendance status")

    return {
        "child_id": record["child_id"],
        "date": record["attendance_date"],
        "status": record["status"],
    }
