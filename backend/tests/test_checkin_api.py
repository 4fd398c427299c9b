import json
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import cv2 # type: ignore
import numpy as np # type: ignore
import pytest

import backend.routers.attendance as attendance_router
import backend.security as security
import database.db as db

FACILITY_ID = "fac-1"
QR_SECRET = "test-secret"


def _sign(child_id: str, facility_id: str = FACILITY_ID) -> str:
    return security.sign_qr_token(child_id, facility_id, secret=QR_SECRET)


@pytest.fixture()
def child(seed):
    seed.child("child-1")
    seed.klass("class-a", "Sakura")
    seed.link_class("child-1", "class-a")
    return "child-1"


def _check_in(client, headers, **body):
    return client.post("/attendance/checkin", json=body, headers=headers)


def test_qr_check_in_success(client, auth_headers, seed, child):
    res = _check_in(client, auth_headers, token=_sign(child), child_id=child, facility_id=FACILITY_ID)

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["data"] == {
        "child_id": child,
        "child_name": "Sato Hana",
        "class_name": "Sakura",
        "checked_in_at": "2026-10-19T06:00:00.000+00:00",
        "attendance_date": "2026-10-19",
    }

    logs = seed.logs(child)
    assert len(logs) == 1
    assert logs[0]["check_in_method"] == "qr"
    assert logs[0]["checked_in_by"] == "staff-1"
    assert logs[0]["checked_out_at"] is None


def test_unscheduled_qr_check_in_creates_irregular_record(client, auth_headers, seed, child):
    _check_in(client, auth_headers, token=_sign(child), child_id=child)

    records = seed.daily_records(child)
    assert [r["status"] for r in records] == ["irregular"]


def test_scheduled_qr_check_in_leaves_daily_record_alone(client, auth_headers, seed, child):
    seed.pattern(child, "monday")

    res = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert res.status_code == 200
    assert seed.daily_records(child) == []


def test_two_simultaneous_check_ins_create_one_log(client, auth_headers, seed, child):
    token = _sign(child)
    barrier = threading.Barrier(2)

    def scan():
        barrier.wait()
        return _check_in(client, auth_headers, token=token, child_id=child)

    with ThreadPoolExecutor(max_workers=2) as pool:
        responses = list(pool.map(lambda _: scan(), range(2)))

    assert [r.status_code for r in responses] == [200, 200]
    data = [r.json()["data"] for r in responses]
    assert data[0]["checked_in_at"] == data[1]["checked_in_at"]
    assert sorted(d["already_checked_in"] for d in data) == [False, True]

    logs = seed.logs(child)
    assert len(logs) == 1
    assert logs[0]["checked_out_at"] is None


def test_existing_daily_record_is_not_overwritten(client, auth_headers, seed, child):
    seed.daily(child, "absent")

    _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert [r["status"] for r in seed.daily_records(child)] == ["absent"]


def test_repeated_check_in_is_idempotent(client, auth_headers, seed, child, fixed_now):
    first = _check_in(client, auth_headers, token=_sign(child), child_id=child)
    fixed_now(datetime(2026, 10, 19, 7, 30, tzinfo=timezone.utc))
    second = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert second.status_code == 200
    data = second.json()["data"]
    assert data["already_checked_in"] is True
    assert data["checked_in_at"] == first.json()["data"]["checked_in_at"]
    assert "already_checked_in" not in first.json()["data"]
    assert len(seed.logs(child)) == 1


def test_check_in_after_check_out_still_reports_first_log(client, auth_headers, seed, child):
    seed.log(
        child,
        "2026-10-19T00:30:00.000+00:00",
        checked_out_at="2026-10-19T02:00:00.000+00:00",
    )

    res = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert res.json()["data"]["already_checked_in"] is True
    assert res.json()["data"]["checked_in_at"] == "2026-10-19T00:30:00.000+00:00"
    assert len(seed.logs(child)) == 1


def test_yesterday_log_does_not_count(client, auth_headers, seed, child):
    # 2026-10-18 23:00 facility time
    seed.log(child, "2026-10-18T14:00:00.000+00:00", attendance_date="2026-10-18")

    res = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert "already_checked_in" not in res.json()["data"]
    assert len(seed.logs(child)) == 2


def test_concurrent_check_in_resolves_to_winner(client, auth_headers, seed, child, monkeypatch):
    # The other scan committed after our duplicate check but before our insert.
    winner_id = seed.log(child, "2026-10-19T05:59:59.500+00:00")
    real_lookup = db.find_first_log_for_day
    calls = {"count": 0}

    def racing_lookup(*args):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return real_lookup(*args)

    monkeypatch.setattr(db, "find_first_log_for_day", racing_lookup)

    res = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["already_checked_in"] is True
    assert data["checked_in_at"] == "2026-10-19T05:59:59.500+00:00"
    assert [log["id"] for log in seed.logs(child)] == [winner_id]
    # the irregular record was rolled back with the failed insert
    assert seed.daily_records(child) == []


def test_storage_failure_is_generic_500(client, auth_headers, child, monkeypatch):
    def broken_insert(**_kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "insert_qr_check_in", broken_insert)

    res = _check_in(client, auth_headers, token=_sign(child), child_id=child)

    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Failed to record attendance"}


def test_token_array_uses_first_element(client, auth_headers, child):
    res = _check_in(client, auth_headers, token=[f"  {_sign(child)} ", "ignored"], child_id=child)
    assert res.status_code == 200


@pytest.mark.parametrize(
    "body",
    [
        {"child_id": "child-1"},
        {"token": "", "child_id": "child-1"},
        {"token": []},
        {"token": "a" * 64, "child_id": "   "},
    ],
)
def test_missing_fields(client, auth_headers, child, body):
    res = _check_in(client, auth_headers, **body)

    assert res.status_code == 400
    assert res.json() == {"success": False, "error": "Token and child_id are required"}


@pytest.mark.parametrize("token", ["A" * 64, "a" * 63, "g" * 64, "a" * 65])
def test_malformed_signature(client, auth_headers, child, token):
    res = _check_in(client, auth_headers, token=token, child_id=child)

    assert res.status_code == 400
    assert res.json()["error"] == "Invalid signature format"


def test_single_flipped_character_rejected(client, auth_headers, seed, child):
    signature = _sign(child)
    flipped = signature[:-1] + ("0" if signature[-1] != "0" else "1")

    res = _check_in(client, auth_headers, token=flipped, child_id=child)

    assert res.status_code == 401
    assert res.json()["error"] == "Invalid signature"
    assert seed.logs(child) == []


def test_signature_of_other_child_rejected(client, auth_headers, seed, child):
    seed.child("child-2")

    res = _check_in(client, auth_headers, token=_sign("child-2"), child_id=child)

    assert res.status_code == 401


def test_facility_mismatch(client, auth_headers, seed, child):
    res = _check_in(client, auth_headers, token=_sign(child, "fac-2"), child_id=child, facility_id="fac-2")

    assert res.status_code == 403
    assert res.json()["error"] == "Facility ID mismatch"
    assert seed.logs(child) == []


def test_child_of_other_facility_not_found(client, auth_headers, seed):
    seed.child("child-x", facility_id="fac-2")

    res = _check_in(client, auth_headers, token=_sign("child-x", "fac-2"), child_id="child-x")

    assert res.status_code == 404
    assert res.json()["error"] == "Child not found or access denied"


def test_deleted_child_not_found(client, auth_headers, seed):
    seed.child("child-gone", deleted=True)

    res = _check_in(client, auth_headers, token=_sign("child-gone"), child_id="child-gone")

    assert res.status_code == 404


def test_session_without_facility_unauthorized(client, make_headers, child):
    res = _check_in(client, make_headers(facility_id=None), token=_sign(child), child_id=child)

    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "Unauthorized"}


def test_missing_bearer_token(client, child):
    res = client.post("/attendance/checkin", json={"token": _sign(child), "child_id": child})

    assert res.status_code == 401
    assert res.json()["success"] is False


def test_missing_secret_fails_closed(client, auth_headers, child, monkeypatch):
    token = _sign(child)
    monkeypatch.setattr(security, "QR_SIGNATURE_SECRET", "")

    res = _check_in(client, auth_headers, token=token, child_id=child)

    assert res.status_code == 500
    assert res.json()["success"] is False


def test_class_name_falls_back(client, auth_headers, seed):
    seed.child("child-2")
    seed.klass("class-old", "Momo")
    seed.link_class("child-2", "class-old", is_current=False)
    seed.child("child-3")

    res_2 = _check_in(client, auth_headers, token=_sign("child-2"), child_id="child-2")
    res_3 = _check_in(client, auth_headers, token=_sign("child-3"), child_id="child-3")

    assert res_2.json()["data"]["class_name"] == "Momo"
    assert res_3.json()["data"]["class_name"] == "Unassigned"


# -----------------------------
# Image scan
# -----------------------------
def _png(width: int = 40, height: int = 40) -> bytes:
    ok, buf = cv2.imencode(".png", np.full((height, width, 3), 255, np.uint8))
    assert ok
    return buf.tobytes()


def _scan(client, headers, data: bytes, content_type: str = "image/png"):
    return client.post(
        "/attendance/checkin/scan",
        files={"file": ("card.png", data, content_type)},
        headers=headers,
    )


def test_scan_rejects_non_image_upload(client, auth_headers, child):
    res = _scan(client, auth_headers, b"hello", content_type="text/plain")
    assert res.status_code == 400


def test_scan_rejects_undecodable_image(client, auth_headers, child):
    res = _scan(client, auth_headers, b"not really a png")

    assert res.status_code == 400
    assert res.json()["error"] == "Invalid image data"


def test_scan_without_qr_code(client, auth_headers, child):
    res = _scan(client, auth_headers, _png())

    assert res.status_code == 400
    assert res.json()["error"] == "QR code not found"


def test_scan_runs_check_in(client, auth_headers, seed, child, monkeypatch):
    payload, _signature = security.create_qr_payload(child, FACILITY_ID, secret=QR_SECRET)
    monkeypatch.setattr(attendance_router, "read_qr_text", lambda _frame: payload)

    res = _scan(client, auth_headers, _png())

    assert res.status_code == 200
    assert res.json()["data"]["child_id"] == child
    assert len(seed.logs(child)) == 1


def test_scan_rejects_foreign_qr_payload(client, auth_headers, child, monkeypatch):
    foreign = json.dumps({"type": "wifi", "child_id": child})
    monkeypatch.setattr(attendance_router, "read_qr_text", lambda _frame: foreign)

    res = _scan(client, auth_headers, _png())

    assert res.status_code == 400
    assert res.json()["error"] == "Invalid QR payload"
