from datetime import date, datetime, time, timedelta, timezone

from backend.config import ACTION_TIMESTAMP_TOLERANCE_MINUTES, FACILITY_UTC_OFFSET_HOURS

FACILITY_TZ = timezone(timedelta(hours=FACILITY_UTC_OFFSET_HOURS))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def facility_now() -> datetime:
    return utc_now().astimezone(FACILITY_TZ)


def facility_today() -> date:
    return facility_now().date()


def facility_clock_time() -> str:
    """Current facility-local time as HH:MM."""
    return facility_now().strftime("%H:%M")


def to_facility_date(stamp: datetime) -> date:
    return stamp.astimezone(FACILITY_TZ).date()


def to_utc_iso(stamp: datetime) -> str:
    return stamp.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string; naive values are read as facility-local time."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=FACILITY_TZ)
    return parsed


def format_facility_hhmm(value: str | None) -> str | None:
    parsed = parse_iso(value)
    if parsed is None:
        return None
    return parsed.astimezone(FACILITY_TZ).strftime("%H:%M")


def _facility_day_range(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(0, 0), tzinfo=FACILITY_TZ)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=FACILITY_TZ)
    return start, end


def day_bounds_utc(day: date) -> tuple[str, str]:
    """UTC ISO bounds of the facility-local day [00:00:00, 23:59:59.999]."""
    start, end = _facility_day_range(day)
    return to_utc_iso(start), to_utc_iso(end)


def parse_local_date(value: str | None) -> date | None:
    """A YYYY-MM-DD facility-local date, or None when absent or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _parse_client_timestamp(raw: object) -> datetime | None:
    # bool is an int subclass; reject it explicitly
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(raw, str):
        return parse_iso(raw)
    return None


def resolve_action_timestamp(raw: object, *, now: datetime | None = None) -> datetime:
    """
    Effective time for a manual check-in/out.

    The client value (ISO-8601 string or epoch milliseconds) wins only when it
    parses and lies within the tolerance window around now; anything else falls
    back to now.
    """
    current = now or utc_now()
    parsed = _parse_client_timestamp(raw)
    if parsed is not None:
        drift = abs((current - parsed).total_seconds()) / 60
        if drift <= ACTION_TIMESTAMP_TOLERANCE_MINUTES:
            return parsed.astimezone(timezone.utc)
    return current


def clamp_to_facility_day(stamp: datetime, day: date) -> datetime:
    """Keep `stamp` inside the facility-local `day` so the log stays in that day's window."""
    start, end = _facility_day_range(day)
    return min(max(stamp, start), end).astimezone(timezone.utc)
