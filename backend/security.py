import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any

from fastapi import Header, HTTPException

from backend.config import AUTH_TOKEN_TTL_SECONDS, QR_SIGNATURE_SECRET, SIGNING_KEY
from backend.errors import ConfigurationError

logger = logging.getLogger(__name__)

QR_PAYLOAD_TYPE = "attendance"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload_b64: str) -> str:
    digest = hmac.new(
        SIGNING_KEY.encode("utf-8"),
        payload_b64.encode("ascii"),
        hashlib.sha256,
    ).digest()
    return _b64url_encode(digest)


# -----------------------------
# Staff sessions
# -----------------------------
def issue_session_token(user_id: str, *, facility_id: str | None = None) -> tuple[str, dict[str, Any]]:
    now = int(time.time())
    exp = now + AUTH_TOKEN_TTL_SECONDS
    payload = {
        "sub": user_id.strip(),
        "facility_id": facility_id.strip() if facility_id else None,
        "iat": now,
        "exp": exp,
    }
    payload_json = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    payload_b64 = _b64url_encode(payload_json.encode("utf-8"))
    token = f"{payload_b64}.{_sign(payload_b64)}"
    return token, payload


def decode_session_token(token: str) -> dict[str, Any] | None:
    if not token or "." not in token:
        return None

    payload_b64, signature = token.split(".", 1)
    expected = _sign(payload_b64)
    if not hmac.compare_digest(signature, expected):
        return None

    try:
        payload_raw = _b64url_decode(payload_b64).decode("utf-8")
        payload = json.loads(payload_raw)
    except Exception:
        return None

    if not isinstance(payload, dict):
        return None

    sub = payload.get("sub")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not sub.strip():
        return None
    if not isinstance(exp, int):
        return None
    if exp < int(time.time()):
        return None

    return payload


def require_session(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = decode_session_token(token.strip())
    if not payload:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return payload


# -----------------------------
# QR card signatures
# -----------------------------
def get_qr_signature_secret() -> str:
    secret = QR_SIGNATURE_SECRET
    if not secret:
        logger.error("QR signature secret is not configured; set QR_SIGNATURE_SECRET or JWT_SECRET.")
        raise ConfigurationError("Failed to process check-in")
    return secret


def sign_qr_token(child_id: str, facility_id: str, *, secret: str | None = None) -> str:
    """
    Signature printed on a child's QR card.

    HMAC-SHA256 keyed with the shared secret over child_id + facility_id + secret,
    hex encoded (64 lowercase characters).
    """
    key = secret if secret is not None else get_qr_signature_secret()
    message = f"{child_id}{facility_id}{key}"
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_qr_signature(token: str, child_id: str, facility_id: str, *, secret: str | None = None) -> bool:
    expected = sign_qr_token(child_id, facility_id, secret=secret).encode("ascii")
    candidate = (token or "").encode("utf-8")
    if len(candidate) != len(expected):
        return False
    return hmac.compare_digest(candidate, expected)


def create_qr_payload(child_id: str, facility_id: str, *, secret: str | None = None) -> tuple[str, str]:
    """Returns (payload_json, signature) as encoded into the printed QR card."""
    signature = sign_qr_token(child_id, facility_id, secret=secret)
    payload = json.dumps(
        {
            "type": QR_PAYLOAD_TYPE,
            "child_id": child_id,
            "facility_id": facility_id,
            "signature": signature,
        },
        separators=(",", ":"),
    )
    return payload, signature
