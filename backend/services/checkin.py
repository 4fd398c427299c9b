"""
QR check-in.

A child's printed card carries an HMAC signature over (child id, facility id).
Scanning it at the facility tablet creates today's attendance log exactly once:
repeated or concurrent scans converge on the first stored check-in.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from backend.config import UNASSIGNED_CLASS_LABEL
from backend.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from backend.security import verify_qr_signature
from backend.services import clock
from backend.services.schedule import is_scheduled_for_date, select_pattern, weekday_key
from database import db
from database.db import AttendanceLog, ChildRecord

logger = logging.getLogger(__name__)

SIGNATURE_PATTERN = re.compile(r"^[a-f0-9]{64}$")


@dataclass(frozen=True)
class Verified:
    facility_id: str


@dataclass(frozen=True)
class Mismatched:
    supplied_facility_id: str
    child_facility_id: str


FacilityBinding = Verified | Mismatched


@dataclass(frozen=True)
class CheckInRequest:
    token: str
    child_id: str
    facility_id: str | None


def normalize_token(raw: Any) -> str | None:
    """Accept a string or the first element of an array; trimmed."""
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if not isinstance(raw, str):
        return None
    token = raw.strip()
    return token or None


def parse_check_in_request(token: Any, child_id: Any, facility_id: Any) -> CheckInRequest:
    clean_token = normalize_token(token)
    clean_child_id = child_id.strip() if isinstance(child_id, str) else None
    if not clean_token or not clean_child_id:
        raise ValidationError("Token and child_id are required")

    if not SIGNATURE_PATTERN.match(clean_token):
        raise ValidationError("Invalid signature format")

    clean_facility_id = facility_id.strip() if isinstance(facility_id, str) and facility_id.strip() else None
    return CheckInRequest(token=clean_token, child_id=clean_child_id, facility_id=clean_facility_id)


def bind_facility(supplied_facility_id: str | None, child_facility_id: str) -> FacilityBinding:
    if supplied_facility_id is None or supplied_facility_id == child_facility_id:
        return Verified(facility_id=supplied_facility_id or child_facility_id)
    return Mismatched(supplied_facility_id=supplied_facility_id, child_facility_id=child_facility_id)


def resolve_class_name(child: ChildRecord) -> str:
    classes = child.get("classes") or []
    current = next((c for c in classes if c.get("is_current")), None)
    chosen = current or (classes[0] if classes else None)
    if chosen and chosen.get("name"):
        return chosen["name"]
    return UNASSIGNED_CLASS_LABEL


def child_display_name(child: ChildRecord) -> str:
    parts = [child.get("family_name") or "", child.get("given_name") or ""]
    return " ".join(p for p in parts if p).strip()


def _success_payload(
    child: ChildRecord,
    class_name: str,
    log: AttendanceLog,
    attendance_date: str,
    *,
    already_checked_in: bool,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "child_id": child["id"],
        "child_name": child_display_name(child),
        "class_name": class_name,
        "checked_in_at": log["checked_in_at"],
        "attendance_date": attendance_date,
    }
    if already_checked_in:
        data["already_checked_in"] = True
    return data


async def _is_expected_today(child_id: str, today) -> bool:
    patterns = await run_in_threadpool(db.get_schedule_patterns, [child_id], today)
    return is_scheduled_for_date(select_pattern(patterns, today), None, weekday_key(today))


async def process_qr_check_in(
    session: dict[str, Any],
    *,
    token: Any,
    child_id: Any,
    facility_id: Any = None,
) -> dict[str, Any]:
    """
    Verify a scanned card and record today's check-in.

    Returns the response `data` dict; raises AttendanceError subclasses for
    every rejection.
    """
    session_facility_id = session.get("facility_id")
    if not session_facility_id:
        raise AuthenticationError("Unauthorized")
    user_id = session.get("sub")

    request = parse_check_in_request(token, child_id, facility_id)

    child = await run_in_threadpool(db.get_child_for_facility, request.child_id, session_facility_id)
    if child is None:
        raise NotFoundError("Child not found or access denied")

    binding = bind_facility(request.facility_id, child["facility_id"])
    if isinstance(binding, Mismatched):
        logger.warning(
            "QR facility mismatch for child %s: card=%s session=%s",
            request.child_id,
            binding.supplied_facility_id,
            binding.child_facility_id,
        )
        raise AuthorizationError("Facility ID mismatch")

    if not verify_qr_signature(request.token, child["id"], binding.facility_id):
        logger.warning("Rejected QR signature for child %s", request.child_id)
        raise AuthenticationError("Invalid signature")

    class_name = resolve_class_name(child)
    now = clock.utc_now()
    today = clock.to_facility_date(now)
    attendance_date = today.isoformat()

    existing = await run_in_threadpool(db.find_first_log_for_day, child["id"], session_facility_id, today)
    if existing:
        return _success_payload(child, class_name, existing, attendance_date, already_checked_in=True)

    daily_record = await run_in_threadpool(db.get_daily_record, child["id"], attendance_date)
    mark_irregular = daily_record is None and not await _is_expected_today(child["id"], today)

    try:
        log = await run_in_threadpool(
            lambda: db.insert_qr_check_in(
                child_id=child["id"],
                facility_id=session_facility_id,
                attendance_date=attendance_date,
                checked_in_at=clock.to_utc_iso(now),
                user_id=user_id,
                mark_irregular=mark_irregular,
            )
        )
    except sqlite3.IntegrityError:
        # Lost the race against a simultaneous scan; answer with the winner's row.
        winner = await run_in_threadpool(db.find_first_log_for_day, child["id"], session_facility_id, today)
        if winner is None:
            logger.exception("Attendance insert conflict without a stored log for child %s", child["id"])
            raise StorageError("Failed to record attendance")
        logger.info("Concurrent QR check-in for child %s resolved to existing log %s", child["id"], winner["id"])
        return _success_payload(child, class_name, winner, attendance_date, already_checked_in=True)
    except sqlite3.Error:
        logger.exception("Attendance insert failed for child %s", child["id"])
        raise StorageError("Failed to record attendance")

    logger.info("QR check-in recorded for child %s (log %s)", child["id"], log["id"])
    return _success_payload(child, class_name, log, attendance_date, already_checked_in=False)
