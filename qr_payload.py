"""
QR payload shared by the pass renderer and the attendance scanner.

The scanner joins on (teamId, participantEmail), so both keys are always
present and the field names below must not change.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from config import QR_ERROR_CORRECTION
from errors import InvalidPayloadError
from models import PassRequest

PAYLOAD_FIELDS = (
    ("teamId", "team_id"),
    ("name", "participant_name"),
    ("teamName", "team_name"),
    ("eventName", "event_name"),
    ("collegeName", "college_name"),
    ("participantEmail", "participant_email"),
    ("participantPhone", "participant_phone"),
    ("paymentStatus", "payment_status"),
)
REQUIRED_KEYS = ("teamId", "participantEmail")


def encode(request: PassRequest) -> str:
    """Serialize a pass request into the compact JSON embedded in the QR code."""
    data = {key: str(getattr(request, attr) or "") for key, attr in PAYLOAD_FIELDS}
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def decode(raw: str) -> Dict[str, Any]:
    """Parse a scanned payload. Raises InvalidPayloadError if it is not ours."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError(f"QR payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidPayloadError("QR payload must be a JSON object")
    missing = [k for k in REQUIRED_KEYS if not str(data.get(k) or "").strip()]
    if missing:
        raise InvalidPayloadError(f"QR payload missing required field(s): {', '.join(missing)}")
    return data


def to_pass_request(data: Dict[str, Any]) -> PassRequest:
    return PassRequest(**{attr: str(data.get(key) or "") for key, attr in PAYLOAD_FIELDS})


def make_qr_image(payload: str):
    """
    Build the QR image for a payload.

    Error correction M keeps the symbol small enough for the fixed QR box.

    Returns:
        PIL Image of the QR code
    """
    import qrcode
    from qrcode import constants

    levels = {
        "L": constants.ERROR_CORRECT_L,
        "M": constants.ERROR_CORRECT_M,
        "Q": constants.ERROR_CORRECT_Q,
        "H": constants.ERROR_CORRECT_H,
    }
    qr = qrcode.QRCode(
        version=None,
        error_correction=levels.get(QR_ERROR_CORRECTION, constants.ERROR_CORRECT_M),
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white")
