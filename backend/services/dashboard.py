import asyncio
from datetime import date
from typing import Any

from starlette.concurrency import run_in_threadpool

from backend.errors import AuthenticationError
from backend.services import clock
from backend.services.alerts import (
    AlertThresholds,
    ChildAttendanceState,
    action_required,
    build_alerts,
    calculate_kpis,
)
from backend.services.presence import derive_presence, group_logs_by_child
from backend.services.schedule import (
    calculate_grade,
    format_grade_label,
    is_scheduled_for_date,
    school_start_time,
    select_pattern,
    to_hhmm,
    weekday_key,
)
from database import db
from database.db import ChildRecord


def _join_name(*parts: str | None) -> str:
    return " ".join(p for p in parts if p).strip()


def _current_class(child: ChildRecord) -> dict[str, Any] | None:
    return next((c for c in child.get("classes") or [] if c.get("is_current")), None)


async def _fetch_roster_context(facility_id: str, day: date, children: list[ChildRecord]) -> dict[str, Any]:
    child_ids = [c["id"] for c in children]
    school_ids = sorted({c["school_id"] for c in children if c.get("school_id")})
    attendance_date = day.isoformat()

    patterns, daily_records, logs, school_schedules, school_names, guardian_phones, classes = await asyncio.gather(
        run_in_threadpool(db.get_schedule_patterns, child_ids, day),
        run_in_threadpool(db.get_daily_records, facility_id, attendance_date, child_ids),
        run_in_threadpool(db.get_logs_for_day, facility_id, day, child_ids),
        run_in_threadpool(db.get_school_schedules, school_ids),
        run_in_threadpool(db.get_school_names, school_ids),
        run_in_threadpool(db.get_guardian_phones, child_ids),
        run_in_threadpool(db.get_active_classes, facility_id),
    )

    patterns_by_child: dict[str, list] = {}
    for pattern in patterns:
        patterns_by_child.setdefault(pattern["child_id"], []).append(pattern)

    return {
        "patterns_by_child": patterns_by_child,
        "daily_by_child": {r["child_id"]: r for r in daily_records},
        "logs_by_child": group_logs_by_child(logs),
        "school_schedules": school_schedules,
        "school_names": school_names,
        "guardian_phones": guardian_phones,
        "classes": classes,
    }


def build_child_state(
    child: ChildRecord,
    context: dict[str, Any],
    day: date,
    *,
    grade_reference: date,
) -> ChildAttendanceState:
    day_key = weekday_key(day)
    pattern = select_pattern(context["patterns_by_child"].get(child["id"], []), day)
    daily_record = context["daily_by_child"].get(child["id"])
    is_scheduled = is_scheduled_for_date(pattern, daily_record, day_key)

    presence = derive_presence(context["logs_by_child"].get(child["id"], []))
    display_log = presence.display_log

    grade = calculate_grade(child.get("birth_date"), child.get("grade_add"), grade_reference)
    school_id = child.get("school_id")
    start_time = None
    end_time = None
    if is_scheduled:
        start_time = school_start_time(context["school_schedules"].get(school_id, []), grade, day_key)
        end_time = to_hhmm(pattern.get("pickup_time")) if pattern else None

    current_class = _current_class(child)
    return {
        "child_id": child["id"],
        "name": _join_name(child.get("family_name"), child.get("given_name")),
        "kana": _join_name(child.get("family_name_kana"), child.get("given_name_kana")),
        "class_id": current_class["class_id"] if current_class else None,
        "class_name": current_class["name"] if current_class else "",
        "age_group": (current_class or {}).get("age_group") or "",
        "grade": grade,
        "grade_label": format_grade_label(grade),
        "school_id": school_id,
        "school_name": context["school_names"].get(school_id) if school_id else None,
        "photo_url": child.get("photo_url"),
        "status": presence.status,
        "is_scheduled_today": is_scheduled,
        "scheduled_start_time": start_time,
        "scheduled_end_time": end_time,
        "actual_in_time": clock.format_facility_hhmm(display_log["checked_in_at"]) if display_log else None,
        "actual_out_time": clock.format_facility_hhmm(display_log["checked_out_at"]) if display_log else None,
        "check_in_method": display_log["check_in_method"] if display_log else None,
        "guardian_phone": context["guardian_phones"].get(child["id"]),
    }


async def build_dashboard_summary(
    session: dict[str, Any],
    *,
    day: date | None = None,
    class_id: str | None = None,
    thresholds: AlertThresholds | None = None,
) -> dict[str, Any]:
    facility_id = session.get("facility_id")
    if not facility_id:
        raise AuthenticationError("Unauthorized")

    now = clock.facility_now()
    target_day = day or now.date()
    current_time = now.strftime("%H:%M")
    limits = thresholds or AlertThresholds()

    children = await run_in_threadpool(lambda: db.list_enrolled_children(facility_id, class_id=class_id))
    context = await _fetch_roster_context(facility_id, target_day, children)

    states = [build_child_state(child, context, target_day, grade_reference=now.date()) for child in children]

    return {
        "current_time": current_time,
        "current_date": target_day.isoformat(),
        "thresholds": {
            "late_arrival_minutes": limits.late_arrival_minutes,
            "overdue_departure_minutes": limits.overdue_departure_minutes,
        },
        "kpi": calculate_kpis(states),
        "alerts": build_alerts(states, current_time, limits),
        "action_required": action_required(states, current_time, limits),
        "attendance_list": states,
        "filters": {"classes": context["classes"]},
    }
