import logging
from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel

from backend.errors import ValidationError
from backend.qr_scanner import decode_image, parse_qr_payload, read_qr_text
from backend.security import require_session
from backend.services.actions import perform_attendance_action
from backend.services.checkin import process_qr_check_in

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckInBody(BaseModel):
    token: str | list[str] | None = None
    child_id: str | None = None
    facility_id: str | None = None


class ActionBody(BaseModel):
    action: str | None = None
    child_id: str | None = None
    # ISO-8601 string or epoch milliseconds; anything unparseable means "now"
    action_timestamp: Any = None


@router.post("/attendance/checkin")
async def qr_check_in(payload: CheckInBody, session: dict = Depends(require_session)):
    data = await process_qr_check_in(
        session,
        token=payload.token,
        child_id=payload.child_id,
        facility_id=payload.facility_id,
    )
    return {"success": True, "data": data}


@router.post("/attendance/checkin/scan")
async def qr_check_in_from_image(
    session: dict = Depends(require_session),
    file: UploadFile = File(...),
):
    if file.content_type not in ("image/jpeg", "image/png"):
        raise ValidationError("Upload JPG/PNG only")

    frame = decode_image(await file.read())
    if frame is None:
        raise ValidationError("Invalid image data")

    text = read_qr_text(frame)
    if text is None:
        raise ValidationError("QR code not found")

    card = parse_qr_payload(text)
    if card is None:
        logger.warning("Scanned QR code is not an attendance card")
        raise ValidationError("Invalid QR payload")

    data = await process_qr_check_in(
        session,
        token=card["signature"],
        child_id=card["child_id"],
        facility_id=card["facility_id"],
    )
    return {"success": True, "data": data}


@router.post("/attendance/action")
async def attendance_action(payload: ActionBody, session: dict = Depends(require_session)):
    await perform_attendance_action(
        session,
        action=payload.action,
        child_id=payload.child_id,
        action_timestamp=payload.action_timestamp,
    )
    return {"success": True}
