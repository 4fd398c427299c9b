import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import Any, Literal, get_args

from starlette.concurrency import run_in_threadpool

from backend.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from backend.services import clock
from database import db
from database.db import AttendanceLog, DailyAttendanceRecord, DailyStatus

logger = logging.getLogger(__name__)

AttendanceAction = Literal["check_in", "check_out", "mark_absent", "add_schedule", "confirm_unexpected"]
ATTENDANCE_ACTIONS: tuple[str, ...] = get_args(AttendanceAction)


@dataclass(frozen=True)
class ActionContext:
    facility_id: str
    child_id: str
    user_id: str | None
    today: date

    @property
    def attendance_date(self) -> str:
        return self.today.isoformat()


@dataclass(frozen=True)
class ActionState:
    daily_record: DailyAttendanceRecord | None
    open_log: AttendanceLog | None


async def load_action_state(ctx: ActionContext) -> ActionState:
    daily_record, open_log = await asyncio.gather(
        run_in_threadpool(db.get_daily_record, ctx.child_id, ctx.attendance_date),
        run_in_threadpool(db.get_open_log, ctx.child_id, ctx.facility_id, ctx.today),
    )
    return ActionState(daily_record=daily_record, open_log=open_log)


async def upsert_daily_status(ctx: ActionContext, status: DailyStatus) -> DailyAttendanceRecord:
    try:
        return await run_in_threadpool(
            lambda: db.upsert_daily_attendance(
                child_id=ctx.child_id,
                facility_id=ctx.facility_id,
                attendance_date=ctx.attendance_date,
                status=status,
                user_id=ctx.user_id,
            )
        )
    except sqlite3.Error:
        logger.exception("Daily attendance upsert failed for child %s (%s)", ctx.child_id, status)
        raise StorageError("Failed to update daily attendance")


async def _check_in(ctx: ActionContext, state: ActionState, effective_at: str) -> None:
    if state.open_log:
        raise ConflictError("Already checked in today")
    try:
        await run_in_threadpool(
            lambda: db.record_manual_check_in(
                child_id=ctx.child_id,
                facility_id=ctx.facility_id,
                attendance_date=ctx.attendance_date,
                checked_in_at=effective_at,
                user_id=ctx.user_id,
            )
        )
    except sqlite3.IntegrityError:
        # Another check-in opened a log between our read and this write.
        raise ConflictError("Already checked in today")
    except sqlite3.Error:
        logger.exception("Manual check-in failed for child %s", ctx.child_id)
        raise StorageError("Failed to record check-in")


async def _check_out(ctx: ActionContext, state: ActionState, effective_at: str) -> None:
    if not state.open_log:
        raise NotFoundError("No active attendance to check out")
    try:
        closed = await run_in_threadpool(
            lambda: db.close_attendance_log(
                state.open_log["id"],
                checked_out_at=effective_at,
                method="manual",
                user_id=ctx.user_id,
            )
        )
    except sqlite3.Error:
        logger.exception("Check-out update failed for child %s", ctx.child_id)
        raise StorageError("Failed to record check-out")
    if not closed:
        raise NotFoundError("No active attendance to check out")


async def _mark_absent(ctx: ActionContext, state: ActionState) -> None:
    if state.open_log:
        raise ConflictError("Child is already checked in")
    await upsert_daily_status(ctx, "absent")


async def _add_schedule(ctx: ActionContext, state: ActionState) -> None:
    await upsert_daily_status(ctx, "scheduled")


async def _confirm_unexpected(ctx: ActionContext, state: ActionState) -> None:
    if not state.open_log:
        raise NotFoundError("No active attendance to confirm")
    await upsert_daily_status(ctx, "irregular")


async def perform_attendance_action(
    session: dict[str, Any],
    *,
    action: Any,
    child_id: Any,
    action_timestamp: Any = None,
) -> None:
    """
    Apply a staff action to today's attendance of one child.

    Only `confirm_unexpected` ever writes "irregular"; a manual check-in always
    marks the day "scheduled".
    """
    facility_id = session.get("facility_id")
    if not facility_id:
        raise AuthenticationError("Unauthorized")

    clean_child_id = child_id.strip() if isinstance(child_id, str) else None
    if not clean_child_id or not action:
        raise ValidationError("child_id and action are required")
    if action not in ATTENDANCE_ACTIONS:
        raise ValidationError("Invalid action")

    child = await run_in_threadpool(db.get_child_for_facility, clean_child_id, facility_id)
    if child is None:
        raise AuthorizationError("Child not found or access denied")

    now = clock.utc_now()
    ctx = ActionContext(
        facility_id=facility_id,
        child_id=clean_child_id,
        user_id=session.get("sub"),
        today=clock.to_facility_date(now),
    )
    state = await load_action_state(ctx)
    # Logs stay inside today's local window.
    effective = clock.resolve_action_timestamp(action_timestamp, now=now)
    effective_at = clock.to_utc_iso(clock.clamp_to_facility_day(effective, ctx.today))

    if action == "check_in":
        await _check_in(ctx, state, effective_at)
    elif action == "check_out":
        await _check_out(ctx, state, effective_at)
    elif action == "mark_absent":
        await _mark_absent(ctx, state)
    elif action == "add_schedule":
        await _add_schedule(ctx, state)
    else:
        await _confirm_unexpected(ctx, state)

    previous_status = state.daily_record["status"] if state.daily_record else None
    logger.info(
        "Attendance action %s applied to child %s (daily status before: %s)",
        action,
        ctx.child_id,
        previous_status,
    )
