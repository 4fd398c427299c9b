from datetime import date
from typing import Mapping

from database.db import WEEKDAY_KEYS, DailyAttendanceRecord, SchedulePattern, SchoolSchedule


def weekday_key(day: date) -> str:
    """Weekday key of a facility-local calendar date ("monday" .. "sunday")."""
    return WEEKDAY_KEYS[day.weekday()]


def pattern_covers(pattern: Mapping | None, day: date) -> bool:
    if not pattern or not pattern.get("is_active"):
        return False
    iso_day = day.isoformat()
    valid_from = pattern.get("valid_from")
    valid_to = pattern.get("valid_to")
    if valid_from and str(valid_from) > iso_day:
        return False
    if valid_to and str(valid_to) < iso_day:
        return False
    return True


def is_scheduled_for_date(
    pattern: SchedulePattern | None,
    daily_record: DailyAttendanceRecord | None,
    day_key: str,
) -> bool:
    """
    Whether a child is expected on the day identified by `day_key`.

    The weekly pattern gives the default; a daily record overrides it in either
    direction ("scheduled" forces on, "absent"/"irregular" force off).
    """
    is_scheduled = bool(pattern[day_key]) if pattern else False

    if daily_record:
        status = daily_record.get("status")
        if status == "scheduled":
            is_scheduled = True
        elif status in ("absent", "irregular"):
            is_scheduled = False

    return is_scheduled


def select_pattern(patterns: list[SchedulePattern], day: date) -> SchedulePattern | None:
    """Latest-starting active pattern whose validity window contains `day`."""
    covering = [p for p in patterns if pattern_covers(p, day)]
    if not covering:
        return None
    return max(covering, key=lambda p: str(p.get("valid_from") or ""))


# -----------------------------
# School timetable lookup
# -----------------------------
def calculate_grade(birth_date: str | None, grade_add: int | None, today: date) -> int | None:
    """
    School grade for the Japanese school year (April 2 .. April 1).

    Children born January 1 .. April 1 enter first grade the year they turn six,
    everyone else the year after.
    """
    if not birth_date:
        return None
    try:
        born = date.fromisoformat(str(birth_date)[:10])
    except ValueError:
        return None

    born_on_or_after_april_2 = (born.month, born.day) >= (4, 2)
    school_entry_year = born.year + 7 if born_on_or_after_april_2 else born.year + 6

    current_school_year = today.year if (today.month, today.day) >= (4, 2) else today.year - 1

    return current_school_year - school_entry_year + 1 + int(grade_add or 0)


def format_grade_label(grade: int | None) -> str:
    if grade is None:
        return "-"
    if grade <= 0:
        return "Preschool"
    return f"Grade {grade}"


def school_start_time(
    schedules: list[SchoolSchedule],
    grade: int | None,
    day_key: str,
) -> str | None:
    """Expected arrival (HH:MM): the school dismissal time for `grade` on that weekday."""
    if grade is None:
        return None
    grade_key = str(grade)
    for schedule in schedules:
        grades = [g.strip() for g in (schedule.get("grades") or "").split(",") if g.strip()]
        if grade_key in grades:
            return to_hhmm(schedule.get(f"{day_key}_time"))
    return None


def to_hhmm(value: str | None) -> str | None:
    if not value:
        return None
    parts = str(value).split(":")
    if len(parts) < 2:
        return None
    return f"{parts[0].zfill(2)}:{parts[1].zfill(2)}"
