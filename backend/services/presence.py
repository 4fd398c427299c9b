from typing import Literal, NamedTuple

from database.db import AttendanceLog

PresenceStatus = Literal["checked_in", "checked_out", "absent"]


class Presence(NamedTuple):
    status: PresenceStatus
    display_log: AttendanceLog | None


def derive_presence(logs: list[AttendanceLog]) -> Presence:
    """
    Presence of one child from today's logs only.

    An open log wins; otherwise the closed log with the latest check-in is shown.
    The daily override record plays no part here.
    """
    open_logs = [log for log in logs if not log.get("checked_out_at")]
    if open_logs:
        return Presence("checked_in", max(open_logs, key=lambda log: log["checked_in_at"]))

    closed_logs = [log for log in logs if log.get("checked_out_at")]
    if closed_logs:
        return Presence("checked_out", max(closed_logs, key=lambda log: log["checked_in_at"]))

    return Presence("absent", None)


def group_logs_by_child(logs: list[AttendanceLog]) -> dict[str, list[AttendanceLog]]:
    grouped: dict[str, list[AttendanceLog]] = {}
    for log in logs:
        grouped.setdefault(log["child_id"], []).append(log)
    return grouped
