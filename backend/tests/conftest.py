from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import backend.security as security
import database.db as db
from backend.services import clock

FACILITY_ID = "fac-1"
OTHER_FACILITY_ID = "fac-2"
STAFF_ID = "staff-1"
QR_SECRET = "test-secret"
TODAY = "2026-10-19"  # Monday
# 15:00 facility time
FIXED_NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


@pytest.fixture()
def fixed_now(monkeypatch):
    current = {"now": FIXED_NOW}

    def set_now(value: datetime):
        current["now"] = value

    monkeypatch.setattr(clock, "utc_now", lambda: current["now"])
    return set_now


@pytest.fixture()
def client(tmp_path, monkeypatch, fixed_now):
    test_db = tmp_path / "attendance_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)
    monkeypatch.setattr(security, "QR_SIGNATURE_SECRET", QR_SECRET)

    db.create_tables()

    with TestClient(main.app) as c:
        yield c


def bearer(user_id: str = STAFF_ID, facility_id: str | None = FACILITY_ID) -> dict[str, str]:
    token, _claims = security.issue_session_token(user_id, facility_id=facility_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers():
    return bearer()


@pytest.fixture()
def make_headers():
    return bearer


class Seeder:
    """Raw inserts for test fixtures; mirrors what the admin tools write."""

    def _execute(self, sql: str, params: tuple) -> int:
        conn = db.connect_db()
        cur = conn.cursor()
        cur.execute(sql, params)
        row_id = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return row_id

    def child(
        self,
        child_id: str,
        *,
        facility_id: str = FACILITY_ID,
        family_name: str = "Sato",
        given_name: str = "Hana",
        family_name_kana: str = "sato",
        given_name_kana: str = "hana",
        birth_date: str | None = "2018-05-10",
        school_id: str | None = None,
        enrollment_status: str = "enrolled",
        deleted: bool = False,
    ) -> str:
        self._execute(
            """
            INSERT INTO children (
                id, facility_id, family_name, given_name, family_name_kana,
                given_name_kana, birth_date, school_id, enrollment_status, deleted_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                child_id,
                facility_id,
                family_name,
                given_name,
                family_name_kana,
                given_name_kana,
                birth_date,
                school_id,
                enrollment_status,
                "2026-01-01 00:00:00" if deleted else None,
            ),
        )
        return child_id

    def klass(self, class_id: str, name: str, *, facility_id: str = FACILITY_ID, age_group: str | None = None):
        self._execute(
            "INSERT INTO classes (id, facility_id, name, age_group) VALUES (?, ?, ?, ?)",
            (class_id, facility_id, name, age_group),
        )

    def link_class(self, child_id: str, class_id: str, *, is_current: bool = True):
        self._execute(
            "INSERT INTO child_classes (child_id, class_id, is_current) VALUES (?, ?, ?)",
            (child_id, class_id, int(is_current)),
        )

    def pattern(
        self,
        child_id: str,
        *days: str,
        valid_from: str = "2026-04-01",
        valid_to: str | None = None,
        pickup_time: str | None = None,
        is_active: bool = True,
    ) -> int:
        flags = [int(day in days) for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")]
        return self._execute(
            """
            INSERT INTO schedule_patterns (
                child_id, monday, tuesday, wednesday, thursday, friday, saturday, sunday,
                valid_from, valid_to, is_active, pickup_time
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (child_id, *flags, valid_from, valid_to, int(is_active), pickup_time),
        )

    def daily(self, child_id: str, status: str, *, attendance_date: str = TODAY, facility_id: str = FACILITY_ID):
        return self._execute(
            """
            INSERT INTO daily_attendance (child_id, facility_id, attendance_date, status)
            VALUES (?, ?, ?, ?)
            """,
            (child_id, facility_id, attendance_date, status),
        )

    def log(
        self,
        child_id: str,
        checked_in_at: str,
        *,
        checked_out_at: str | None = None,
        method: str = "qr",
        attendance_date: str = TODAY,
        facility_id: str = FACILITY_ID,
    ) -> int:
        return self._execute(
            """
            INSERT INTO attendance_logs (
                child_id, facility_id, attendance_date, checked_in_at, checked_out_at, check_in_method
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (child_id, facility_id, attendance_date, checked_in_at, checked_out_at, method),
        )

    def school(self, school_id: str, name: str, *, grades: str, monday_time: str | None = None):
        self._execute("INSERT OR IGNORE INTO schools (id, name) VALUES (?, ?)", (school_id, name))
        self._execute(
            "INSERT INTO school_schedules (school_id, grades, monday_time) VALUES (?, ?, ?)",
            (school_id, grades, monday_time),
        )

    def guardian(self, child_id: str, guardian_id: str, phone: str, *, is_primary: bool = True):
        self._execute("INSERT INTO guardians (id, phone) VALUES (?, ?)", (guardian_id, phone))
        self._execute(
            "INSERT INTO child_guardians (child_id, guardian_id, is_primary) VALUES (?, ?, ?)",
            (child_id, guardian_id, int(is_primary)),
        )

    # -----------------------------
    # Reads
    # -----------------------------
    def logs(self, child_id: str) -> list[dict]:
        conn = db.connect_db()
        rows = conn.execute(
            "SELECT * FROM attendance_logs WHERE child_id = ? ORDER BY id",
            (child_id,),
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    def daily_records(self, child_id: str) -> list[dict]:
        conn = db.connect_db()
        rows = conn.execute(
            "SELECT * FROM daily_attendance WHERE child_id = ? ORDER BY id",
            (child_id,),
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]


@pytest.fixture()
def seed(client):
    return Seeder()
