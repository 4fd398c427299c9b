import sqlite3
from datetime import date
from typing import Any, Literal, TypedDict

from backend.config import DB_PATH
from backend.services.clock import day_bounds_utc

DailyStatus = Literal["scheduled", "absent", "irregular"]
CheckMethod = Literal["qr", "manual"]

WEEKDAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ClassLink(TypedDict):
    class_id: str
    name: str
    age_group: str | None
    is_current: bool


class ChildRecord(TypedDict):
    id: str
    facility_id: str
    family_name: str | None
    given_name: str | None
    family_name_kana: str | None
    given_name_kana: str | None
    birth_date: str | None
    grade_add: int | None
    school_id: str | None
    photo_url: str | None
    classes: list[ClassLink]


class SchedulePattern(TypedDict):
    id: int
    child_id: str
    monday: int
    tuesday: int
    wednesday: int
    thursday: int
    friday: int
    saturday: int
    sunday: int
    valid_from: str
    valid_to: str | None
    is_active: int
    pickup_time: str | None
    updated_at: str | None


class DailyAttendanceRecord(TypedDict):
    id: int
    child_id: str
    facility_id: str
    attendance_date: str
    status: DailyStatus
    created_by: str | None
    updated_by: str | None


class AttendanceLog(TypedDict):
    id: int
    child_id: str
    facility_id: str
    attendance_date: str
    checked_in_at: str
    checked_out_at: str | None
    check_in_method: CheckMethod
    check_out_method: CheckMethod | None
    checked_in_by: str | None
    checked_out_by: str | None


class SchoolSchedule(TypedDict):
    school_id: str
    grades: str
    monday_time: str | None
    tuesday_time: str | None
    wednesday_time: str | None
    thursday_time: str | None
    friday_time: str | None
    saturday_time: str | None
    sunday_time: str | None


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    # recommended with FK tables
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables():
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS children (
        id TEXT PRIMARY KEY,
        facility_id TEXT NOT NULL,
        family_name TEXT,
        given_name TEXT,
        family_name_kana TEXT,
        given_name_kana TEXT,
        birth_date TEXT,                 -- YYYY-MM-DD
        grade_add INTEGER DEFAULT 0,
        school_id TEXT,
        photo_url TEXT,
        enrollment_status TEXT NOT NULL DEFAULT 'enrolled',
        deleted_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS classes (
        id TEXT PRIMARY KEY,
        facility_id TEXT NOT NULL,
        name TEXT NOT NULL,
        age_group TEXT,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS child_classes (
        child_id TEXT NOT NULL,
        class_id TEXT NOT NULL,
        is_current INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE,
        FOREIGN KEY (class_id) REFERENCES classes(id) ON DELETE CASCADE,
        UNIQUE(child_id, class_id)
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS guardians (
        id TEXT PRIMARY KEY,
        phone TEXT
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS child_guardians (
        child_id TEXT NOT NULL,
        guardian_id TEXT NOT NULL,
        is_primary INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE,
        FOREIGN KEY (guardian_id) REFERENCES guardians(id) ON DELETE CASCADE,
        UNIQUE(child_id, guardian_id)
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS schools (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS school_schedules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        school_id TEXT NOT NULL,
        grades TEXT NOT NULL,            -- comma list, e.g. "1,2"
        monday_time TEXT,                -- HH:MM[:SS]
        tuesday_time TEXT,
        wednesday_time TEXT,
        thursday_time TEXT,
        friday_time TEXT,
        saturday_time TEXT,
        sunday_time TEXT,
        FOREIGN KEY (school_id) REFERENCES schools(id) ON DELETE CASCADE
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS schedule_patterns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        child_id TEXT NOT NULL,
        monday INTEGER NOT NULL DEFAULT 0,
        tuesday INTEGER NOT NULL DEFAULT 0,
        wednesday INTEGER NOT NULL DEFAULT 0,
        thursday INTEGER NOT NULL DEFAULT 0,
        friday INTEGER NOT NULL DEFAULT 0,
        saturday INTEGER NOT NULL DEFAULT 0,
        sunday INTEGER NOT NULL DEFAULT 0,
        valid_from TEXT NOT NULL,        -- YYYY-MM-DD
        valid_to TEXT,                   -- YYYY-MM-DD, open-ended when NULL
        is_active INTEGER NOT NULL DEFAULT 1,
        pickup_time TEXT,                -- HH:MM planned departure
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS daily_attendance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        child_id TEXT NOT NULL,
        facility_id TEXT NOT NULL,
        attendance_date TEXT NOT NULL,   -- YYYY-MM-DD (facility local)
        status TEXT NOT NULL CHECK (status IN ('scheduled', 'absent', 'irregular')),
        created_by TEXT,
        updated_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE,
        UNIQUE(child_id, attendance_date)
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS attendance_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        child_id TEXT NOT NULL,
        facility_id TEXT NOT NULL,
        attendance_date TEXT NOT NULL,   -- facility-local date of checked_in_at
        checked_in_at TEXT NOT NULL,     -- UTC ISO-8601, millisecond precision
        checked_out_at TEXT,
        check_in_method TEXT NOT NULL CHECK (check_in_method IN ('qr', 'manual')),
        check_out_method TEXT CHECK (check_out_method IN ('qr', 'manual')),
        checked_in_by TEXT,
        checked_out_by TEXT,
        FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
    )
    """)

    # At most one open log per child/facility/day; concurrent check-ins rely on this.
    cursor.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS ux_attendance_logs_open
    ON attendance_logs (child_id, facility_id, attendance_date)
    WHERE checked_out_at IS NULL
    """)
    cursor.execute("""
    CREATE INDEX IF NOT EXISTS ix_attendance_logs_facility_checked_in
    ON attendance_logs (facility_id, checked_in_at)
    """)

    conn.commit()
    conn.close()


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


# -----------------------------
# Children
# -----------------------------
def _classes_for_children(cur: sqlite3.Cursor, child_ids: list[str]) -> dict[str, list[ClassLink]]:
    if not child_ids:
        return {}
    cur.execute(
        f"""
        SELECT cc.child_id, c.id, c.name, c.age_group, cc.is_current
        FROM child_classes cc
        JOIN classes c ON c.id = cc.class_id
        WHERE cc.child_id IN ({_placeholders(child_ids)})
        ORDER BY cc.rowid ASC
        """,
        child_ids,
    )
    linked: dict[str, list[ClassLink]] = {}
    for row in cur.fetchall():
        linked.setdefault(row[0], []).append(
            {
                "class_id": row[1],
                "name": row[2],
                "age_group": row[3],
                "is_current": bool(row[4]),
            }
        )
    return linked


def _child_from_row(row: sqlite3.Row, classes: list[ClassLink]) -> ChildRecord:
    return {
        "id": row["id"],
        "facility_id": row["facility_id"],
        "family_name": row["family_name"],
        "given_name": row["given_name"],
        "family_name_kana": row["family_name_kana"],
        "given_name_kana": row["given_name_kana"],
        "birth_date": row["birth_date"],
        "grade_add": row["grade_add"],
        "school_id": row["school_id"],
        "photo_url": row["photo_url"],
        "classes": classes,
    }


def get_child_for_facility(child_id: str, facility_id: str) -> ChildRecord | None:
    """
    Child by id, scoped to a facility.

    A child of another facility is indistinguishable from a missing one.
    """
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT *
            FROM children
            WHERE id = ? AND facility_id = ? AND deleted_at IS NULL
            """,
            (child_id, facility_id),
        )
        row = cur.fetchone()
        if not row:
            return None
        classes = _classes_for_children(cur, [child_id]).get(child_id, [])
        return _child_from_row(row, classes)
    finally:
        conn.close()


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_enrolled_children(
    facility_id: str,
    *,
    class_id: str | None = None,
    search: str | None = None,
) -> list[ChildRecord]:
    """Enrolled children of a facility, optionally by current class and name/kana substring."""
    sql = """
        SELECT ch.*
        FROM children ch
        WHERE ch.facility_id = ?
          AND ch.enrollment_status = 'enrolled'
          AND ch.deleted_at IS NULL
    """
    params: list[Any] = [facility_id]
    if class_id:
        sql += """
          AND EXISTS (
              SELECT 1 FROM child_classes cc
              WHERE cc.child_id = ch.id AND cc.is_current = 1 AND cc.class_id = ?
          )
        """
        params.append(class_id)
    if search:
        sql += """
          AND (
              ch.family_name LIKE ? ESCAPE '\\'
              OR ch.given_name LIKE ? ESCAPE '\\'
              OR ch.family_name_kana LIKE ? ESCAPE '\\'
              OR ch.given_name_kana LIKE ? ESCAPE '\\'
          )
        """
        params.extend([_like_pattern(search)] * 4)
    sql += " ORDER BY ch.family_name_kana, ch.given_name_kana, ch.id"

    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(sql, params)
        rows = cur.fetchall()
        classes = _classes_for_children(cur, [row["id"] for row in rows])
        return [_child_from_row(row, classes.get(row["id"], [])) for row in rows]
    finally:
        conn.close()


def get_active_classes(facility_id: str) -> list[dict[str, str]]:
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, name
            FROM classes
            WHERE facility_id = ? AND is_active = 1
            ORDER BY name
            """,
            (facility_id,),
        )
        return [{"class_id": row[0], "class_name": row[1]} for row in cur.fetchall()]
    finally:
        conn.close()


def get_guardian_phones(child_ids: list[str]) -> dict[str, str | None]:
    """Primary guardian's phone per child (first linked guardian if none is primary)."""
    if not child_ids:
        return {}
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT cg.child_id, g.phone
            FROM child_guardians cg
            JOIN guardians g ON g.id = cg.guardian_id
            WHERE cg.child_id IN ({_placeholders(child_ids)})
            ORDER BY cg.is_primary DESC, cg.rowid ASC
            """,
            child_ids,
        )
        phones: dict[str, str | None] = {}
        for row in cur.fetchall():
            phones.setdefault(row[0], row[1])
        return phones
    finally:
        conn.close()


# -----------------------------
# Schools
# -----------------------------
def get_school_schedules(school_ids: list[str]) -> dict[str, list[SchoolSchedule]]:
    if not school_ids:
        return {}
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT school_id, grades, monday_time, tuesday_time, wednesday_time,
                   thursday_time, friday_time, saturday_time, sunday_time
            FROM school_schedules
            WHERE school_id IN ({_placeholders(school_ids)})
            ORDER BY id
            """,
            school_ids,
        )
        grouped: dict[str, list[SchoolSchedule]] = {}
        for row in cur.fetchall():
            grouped.setdefault(row["school_id"], []).append(dict(row))
        return grouped
    finally:
        conn.close()


def get_school_names(school_ids: list[str]) -> dict[str, str]:
    if not school_ids:
        return {}
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"SELECT id, name FROM schools WHERE id IN ({_placeholders(school_ids)})",
            school_ids,
        )
        return {row[0]: row[1] for row in cur.fetchall()}
    finally:
        conn.close()


# -----------------------------
# Schedule patterns + daily overrides
# -----------------------------
def get_schedule_patterns(child_ids: list[str], day: date) -> list[SchedulePattern]:
    """Active patterns whose validity window contains `day`."""
    if not child_ids:
        return []
    iso_day = day.isoformat()
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT *
            FROM schedule_patterns
            WHERE is_active = 1
              AND valid_from <= ?
              AND (valid_to IS NULL OR valid_to >= ?)
              AND child_id IN ({_placeholders(child_ids)})
            ORDER BY valid_from ASC, id ASC
            """,
            [iso_day, iso_day, *child_ids],
        )
        return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


def save_weekly_pattern(
    *,
    child_id: str,
    days: dict[str, bool],
    effective_date: str,
    pickup_time: str | None = None,
    update_pickup_time: bool = False,
) -> tuple[int, bool]:
    """
    Update the pattern in force on `effective_date`, or start a new one there.

    Returns (pattern_id, created). Missing weekdays are stored as off.
    """
    flags = [int(bool(days.get(key))) for key in WEEKDAY_KEYS]
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id
            FROM schedule_patterns
            WHERE child_id = ?
              AND is_active = 1
              AND valid_from <= ?
              AND (valid_to IS NULL OR valid_to >= ?)
            ORDER BY valid_from DESC, id DESC
            LIMIT 1
            """,
            (child_id, effective_date, effective_date),
        )
        row = cur.fetchone()

        if row:
            pattern_id = int(row[0])
            assignments = ", ".join(f"{key} = ?" for key in WEEKDAY_KEYS)
            params: list[Any] = [*flags]
            if update_pickup_time:
                assignments += ", pickup_time = ?"
                params.append(pickup_time)
            cur.execute(
                f"""
                UPDATE schedule_patterns
                SET {assignments}, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                [*params, pattern_id],
            )
            created = False
        else:
            cur.execute(
                f"""
                INSERT INTO schedule_patterns (
                    child_id, {", ".join(WEEKDAY_KEYS)}, valid_from, is_active, pickup_time
                )
                VALUES (?, {_placeholders(flags)}, ?, 1, ?)
                """,
                (child_id, *flags, effective_date, pickup_time),
            )
            pattern_id = int(cur.lastrowid)
            created = True

        conn.commit()
        return pattern_id, created
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_daily_record(child_id: str, attendance_date: str) -> DailyAttendanceRecord | None:
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, child_id, facility_id, attendance_date, status, created_by, updated_by
            FROM daily_attendance
            WHERE child_id = ? AND attendance_date = ?
            """,
            (child_id, attendance_date),
        )
        row = cur.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_daily_records(facility_id: str, attendance_date: str, child_ids: list[str]) -> list[DailyAttendanceRecord]:
    if not child_ids:
        return []
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT id, child_id, facility_id, attendance_date, status, created_by, updated_by
            FROM daily_attendance
            WHERE facility_id = ?
              AND attendance_date = ?
              AND child_id IN ({_placeholders(child_ids)})
            """,
            [facility_id, attendance_date, *child_ids],
        )
        return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


def _upsert_daily_attendance(
    cur: sqlite3.Cursor,
    *,
    child_id: str,
    facility_id: str,
    attendance_date: str,
    status: DailyStatus,
    user_id: str | None,
) -> None:
    cur.execute(
        """
        INSERT INTO daily_attendance (
            child_id, facility_id, attendance_date, status, created_by, updated_by
        )
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(child_id, attendance_date) DO UPDATE SET
            status = excluded.status,
            updated_by = excluded.updated_by,
            updated_at = CURRENT_TIMESTAMP
        """,
        (child_id, facility_id, attendance_date, status, user_id, user_id),
    )


def upsert_daily_attendance(
    *,
    child_id: str,
    facility_id: str,
    attendance_date: str,
    status: DailyStatus,
    user_id: str | None,
) -> DailyAttendanceRecord:
    """Create or update the single (child, date) override in one statement."""
    conn = connect_db()
    try:
        cur = conn.cursor()
        _upsert_daily_attendance(
            cur,
            child_id=child_id,
            facility_id=facility_id,
            attendance_date=attendance_date,
            status=status,
            user_id=user_id,
        )
        conn.commit()
    finally:
        conn.close()

    record = get_daily_record(child_id, attendance_date)
    if record is None:
        raise sqlite3.DatabaseError("daily attendance row missing after upsert")
    return record


# -----------------------------
# Attendance logs
# -----------------------------
_LOG_COLUMNS = """
    id, child_id, facility_id, attendance_date, checked_in_at, checked_out_at,
    check_in_method, check_out_method, checked_in_by, checked_out_by
"""


def get_logs_for_day(facility_id: str, day: date, child_ids: list[str]) -> list[AttendanceLog]:
    """Logs whose check-in falls inside the facility-local day."""
    if not child_ids:
        return []
    start, end = day_bounds_utc(day)
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM attendance_logs
            WHERE facility_id = ?
              AND checked_in_at >= ?
              AND checked_in_at <= ?
              AND child_id IN ({_placeholders(child_ids)})
            ORDER BY checked_in_at ASC
            """,
            [facility_id, start, end, *child_ids],
        )
        return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


def find_first_log_for_day(child_id: str, facility_id: str, day: date) -> AttendanceLog | None:
    start, end = day_bounds_utc(day)
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM attendance_logs
            WHERE child_id = ?
              AND facility_id = ?
              AND checked_in_at >= ?
              AND checked_in_at <= ?
            ORDER BY checked_in_at ASC
            LIMIT 1
            """,
            (child_id, facility_id, start, end),
        )
        row = cur.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_open_log(child_id: str, facility_id: str, day: date) -> AttendanceLog | None:
    start, end = day_bounds_utc(day)
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM attendance_logs
            WHERE child_id = ?
              AND facility_id = ?
              AND checked_in_at >= ?
              AND checked_in_at <= ?
              AND checked_out_at IS NULL
            ORDER BY checked_in_at DESC
            LIMIT 1
            """,
            (child_id, facility_id, start, end),
        )
        row = cur.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_log_by_id(log_id: int) -> AttendanceLog | None:
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(f"SELECT {_LOG_COLUMNS} FROM attendance_logs WHERE id = ?", (log_id,))
        row = cur.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def _insert_log(
    cur: sqlite3.Cursor,
    *,
    child_id: str,
    facility_id: str,
    attendance_date: str,
    checked_in_at: str,
    method: CheckMethod,
    user_id: str | None,
) -> int:
    cur.execute(
        """
        INSERT INTO attendance_logs (
            child_id, facility_id, attendance_date, checked_in_at, check_in_method, checked_in_by
        )
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (child_id, facility_id, attendance_date, checked_in_at, method, user_id),
    )
    return int(cur.lastrowid)


def insert_qr_check_in(
    *,
    child_id: str,
    facility_id: str,
    attendance_date: str,
    checked_in_at: str,
    user_id: str | None,
    mark_irregular: bool,
) -> AttendanceLog:
    """
    Insert a QR check-in log and, when asked, an "irregular" daily record.

    Both writes share one transaction. An existing daily record is left alone.
    Raises sqlite3.IntegrityError when an open log already exists for the day.
    """
    conn = connect_db()
    try:
        cur = conn.cursor()
        log_id = _insert_log(
            cur,
            child_id=child_id,
            facility_id=facility_id,
            attendance_date=attendance_date,
            checked_in_at=checked_in_at,
            method="qr",
            user_id=user_id,
        )
        if mark_irregular:
            cur.execute(
                """
                INSERT OR IGNORE INTO daily_attendance (
                    child_id, facility_id, attendance_date, status, created_by, updated_by
                )
                VALUES (?, ?, ?, 'irregular', ?, ?)
                """,
                (child_id, facility_id, attendance_date, user_id, user_id),
            )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    log = get_log_by_id(log_id)
    if log is None:
        raise sqlite3.DatabaseError("attendance log missing after insert")
    return log


def record_manual_check_in(
    *,
    child_id: str,
    facility_id: str,
    attendance_date: str,
    checked_in_at: str,
    user_id: str | None,
) -> AttendanceLog:
    """
    Staff check-in: new manual log plus daily record forced to "scheduled".

    Both writes commit together or not at all.
    """
    conn = connect_db()
    try:
        cur = conn.cursor()
        log_id = _insert_log(
            cur,
            child_id=child_id,
            facility_id=facility_id,
            attendance_date=attendance_date,
            checked_in_at=checked_in_at,
            method="manual",
            user_id=user_id,
        )
        _upsert_daily_attendance(
            cur,
            child_id=child_id,
            facility_id=facility_id,
            attendance_date=attendance_date,
            status="scheduled",
            user_id=user_id,
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    log = get_log_by_id(log_id)
    if log is None:
        raise sqlite3.DatabaseError("attendance log missing after insert")
    return log


def close_attendance_log(
    log_id: int,
    *,
    checked_out_at: str,
    method: CheckMethod,
    user_id: str | None,
) -> bool:
    """Set the check-out on an open log. Returns False if it was already closed."""
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE attendance_logs
            SET checked_out_at = ?, check_out_method = ?, checked_out_by = ?
            WHERE id = ? AND checked_out_at IS NULL
            """,
            (checked_out_at, method, user_id, log_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()
