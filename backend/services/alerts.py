from dataclasses import dataclass
from typing import Any, Literal, TypedDict

from backend.config import LATE_ARRIVAL_THRESHOLD_MINUTES, OVERDUE_DEPARTURE_THRESHOLD_MINUTES
from backend.services.presence import PresenceStatus

AlertType = Literal["overdue", "late", "unexpected", "not_arrived"]

# Lower number = shown first.
ALERT_PRIORITY: dict[str, int] = {
    "overdue": 1,
    "late": 2,
    "unexpected": 3,
    "not_arrived": 4,
}


@dataclass(frozen=True)
class AlertThresholds:
    late_arrival_minutes: int = LATE_ARRIVAL_THRESHOLD_MINUTES
    overdue_departure_minutes: int = OVERDUE_DEPARTURE_THRESHOLD_MINUTES


class ChildAttendanceState(TypedDict, total=False):
    child_id: str
    name: str
    kana: str
    class_id: str | None
    class_name: str
    age_group: str
    grade: int | None
    grade_label: str
    school_id: str | None
    school_name: str | None
    photo_url: str | None
    status: PresenceStatus
    is_scheduled_today: bool
    scheduled_start_time: str | None
    scheduled_end_time: str | None
    actual_in_time: str | None
    actual_out_time: str | None
    check_in_method: str | None
    guardian_phone: str | None


def minutes_diff(current_time: str, target_time: str | None) -> int:
    """
    Minutes from `target_time` to `current_time`, both HH:MM on the same day.

    No midnight wraparound: a target later than now is simply negative.
    """
    if not target_time or not current_time:
        return 0
    h1, m1 = (int(part) for part in current_time.split(":")[:2])
    h2, m2 = (int(part) for part in target_time.split(":")[:2])
    return (h1 * 60 + m1) - (h2 * 60 + m2)


def is_overdue(state: ChildAttendanceState, now: str, thresholds: AlertThresholds) -> bool:
    if state.get("status") != "checked_in" or not state.get("is_scheduled_today"):
        return False
    end_time = state.get("scheduled_end_time")
    if not end_time:
        return False
    return minutes_diff(now, end_time) >= thresholds.overdue_departure_minutes


def is_late(state: ChildAttendanceState, now: str, thresholds: AlertThresholds) -> bool:
    if state.get("status") != "absent" or not state.get("is_scheduled_today"):
        return False
    start_time = state.get("scheduled_start_time")
    if not start_time:
        return False
    return minutes_diff(now, start_time) >= thresholds.late_arrival_minutes


def is_unexpected(state: ChildAttendanceState) -> bool:
    # Manual check-ins are never unexpected: staff registered them on purpose.
    return (
        state.get("status") == "checked_in"
        and not state.get("is_scheduled_today")
        and state.get("check_in_method") == "qr"
    )


def is_not_arrived(state: ChildAttendanceState) -> bool:
    return bool(state.get("is_scheduled_today")) and state.get("status") == "absent"


def classify_alert(
    state: ChildAttendanceState,
    now: str,
    thresholds: AlertThresholds | None = None,
) -> AlertType | None:
    limits = thresholds or AlertThresholds()
    if is_unexpected(state):
        return "unexpected"
    if is_late(state, now, limits):
        return "late"
    if is_overdue(state, now, limits):
        return "overdue"
    if is_not_arrived(state):
        return "not_arrived"
    return None


def _base_projection(state: ChildAttendanceState) -> dict[str, Any]:
    return {
        "child_id": state.get("child_id"),
        "name": state.get("name", ""),
        "kana": state.get("kana", ""),
        "class_name": state.get("class_name", ""),
        "age_group": state.get("age_group", ""),
        "grade": state.get("grade"),
        "grade_label": state.get("grade_label", "-"),
        "school_id": state.get("school_id"),
        "school_name": state.get("school_name"),
    }


def build_alerts(
    states: list[ChildAttendanceState],
    now: str,
    thresholds: AlertThresholds | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Contact-worthy alerts grouped by type, each carrying what staff need to act."""
    limits = thresholds or AlertThresholds()
    overdue: list[dict[str, Any]] = []
    late: list[dict[str, Any]] = []
    unexpected: list[dict[str, Any]] = []

    for state in states:
        alert_type = classify_alert(state, now, limits)
        if alert_type == "overdue":
            overdue.append({
                **_base_projection(state),
                "scheduled_end_time": state.get("scheduled_end_time"),
                "actual_in_time": state.get("actual_in_time"),
                "minutes_overdue": minutes_diff(now, state.get("scheduled_end_time")),
                "guardian_phone": state.get("guardian_phone"),
            })
        elif alert_type == "late":
            late.append({
                **_base_projection(state),
                "scheduled_start_time": state.get("scheduled_start_time"),
                "minutes_late": minutes_diff(now, state.get("scheduled_start_time")),
                "guardian_phone": state.get("guardian_phone"),
            })
        elif alert_type == "unexpected":
            unexpected.append({
                **_base_projection(state),
                "actual_in_time": state.get("actual_in_time"),
                "check_in_method": state.get("check_in_method"),
            })

    return {"overdue": overdue, "late": late, "unexpected": unexpected}


def action_required(
    states: list[ChildAttendanceState],
    now: str,
    thresholds: AlertThresholds | None = None,
) -> list[dict[str, Any]]:
    """Children needing staff attention, most urgent first."""
    limits = thresholds or AlertThresholds()
    items = []
    for state in states:
        alert_type = classify_alert(state, now, limits)
        if alert_type is None:
            continue
        items.append({**state, "alert_type": alert_type})
    items.sort(key=lambda item: (ALERT_PRIORITY[item["alert_type"]], item.get("kana") or ""))
    return items


def calculate_kpis(states: list[ChildAttendanceState]) -> dict[str, int]:
    kpi = {"scheduled_today": 0, "present_now": 0, "not_arrived": 0, "checked_out": 0}
    for state in states:
        if state.get("is_scheduled_today"):
            kpi["scheduled_today"] += 1
        if state.get("status") == "checked_in":
            kpi["present_now"] += 1
        elif state.get("status") == "checked_out":
            kpi["checked_out"] += 1
        elif is_not_arrived(state):
            kpi["not_arrived"] += 1
    return kpi
