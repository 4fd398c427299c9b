import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("ATTENDANCE_DB_PATH", BASE_DIR / "database" / "attendance.db"))

# Shared with the QR card generator; both sides must agree or every check-in fails closed.
QR_SIGNATURE_SECRET = (
    os.getenv("QR_SIGNATURE_SECRET", "").strip()
    or os.getenv("JWT_SECRET", "").strip()
)
SIGNING_KEY = (
    os.getenv("ATTENDANCE_SIGNING_KEY", "").strip()
    or secrets.token_urlsafe(32)
)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("ATTENDANCE_AUTH_TOKEN_TTL_SECONDS", "43200"))


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int = 0) -> int:
    if not value:
        return fallback
    try:
        return max(minimum, int(value.strip()))
    except ValueError:
        return fallback


def _parse_log_format(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized == "json":
        return "json"
    return "text"


CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("ATTENDANCE_CORS_ALLOW_ORIGINS"),
    ["http://localhost:3000", "http://127.0.0.1:3000"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("ATTENDANCE_CORS_ALLOW_METHODS"),
    ["GET", "POST", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("ATTENDANCE_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("ATTENDANCE_CORS_ALLOW_CREDENTIALS"), True)

LATE_ARRIVAL_THRESHOLD_MINUTES = _parse_int(
    os.getenv("ATTENDANCE_LATE_ARRIVAL_THRESHOLD_MINUTES"),
    30,
)
OVERDUE_DEPARTURE_THRESHOLD_MINUTES = _parse_int(
    os.getenv("ATTENDANCE_OVERDUE_DEPARTURE_THRESHOLD_MINUTES"),
    30,
)
# Facility calendar is a fixed offset from UTC (JST, no DST).
FACILITY_UTC_OFFSET_HOURS = int(os.getenv("ATTENDANCE_FACILITY_UTC_OFFSET_HOURS", "9"))
ACTION_TIMESTAMP_TOLERANCE_MINUTES = _parse_int(
    os.getenv("ATTENDANCE_ACTION_TIMESTAMP_TOLERANCE_MINUTES"),
    5,
)

UNASSIGNED_CLASS_LABEL = os.getenv("ATTENDANCE_UNASSIGNED_CLASS_LABEL", "Unassigned")

LOG_LEVEL = (os.getenv("ATTENDANCE_LOG_LEVEL", "INFO").strip() or "INFO").upper()
LOG_FORMAT = _parse_log_format(os.getenv("ATTENDANCE_LOG_FORMAT"))
