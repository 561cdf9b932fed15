"""
Token Service - issues and decodes the QR tokens students present at the door.

Issuing:
1. Serialize {"studentId": <id>} as compact JSON (the only data in the token)
2. Render that text as a PNG QR symbol

Decoding produces one of three variants instead of raising:
- StructuredToken: JSON object with a non-empty string "studentId"
- LegacyToken: "name|email|phone|college|department", the format issued
  before tokens carried only the student ID. Read-only; resolved by email.
- UnrecognizedToken: anything else
"""

import base64
import io
import json
import os
from dataclasses import dataclass
from typing import Optional, Union

import qrcode
from qrcode.exceptions import DataOverflowError

from checkin_portal.logging_config import get_logger, log_with_context

logger = get_logger("tokens")

QR_BOX_SIZE = int(os.getenv("QR_BOX_SIZE", "10"))
QR_BORDER = int(os.getenv("QR_BORDER", "4"))

STUDENT_ID_KEY = "studentId"
LEGACY_SEPARATOR = "|"
LEGACY_FIELD_COUNT = 5


class EncodingError(Exception):
    """Raised when a token payload cannot be built or rendered."""


@dataclass(frozen=True)
class IssuedToken:
    student_id: str
    payload: bytes
    image_png: bytes

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8")

    @property
    def data_url(self) -> str:
        """PNG image as a data URL, the form stored on the student row."""
        return "data:image/png;base64," + base64.b64encode(self.image_png).decode("ascii")


@dataclass(frozen=True)
class StructuredToken:
    student_id: str


@dataclass(frozen=True)
class LegacyToken:
    name: str
    email: str
    phone: str
    college: str
    department: str


@dataclass(frozen=True)
class UnrecognizedToken:
    raw: str


DecodedToken = Union[StructuredToken, LegacyToken, UnrecognizedToken]


def _validate_student_id(student_id) -> str:
    if not isinstance(student_id, str):
        raise EncodingError(f"Student ID must be a string, got {type(student_id).__name__}")
    if not student_id or student_id.strip() != student_id:
        raise EncodingError("Student ID must be non-empty with no surrounding whitespace")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in student_id):
        raise EncodingError("Student ID contains control characters")
    return student_id


def build_payload(student_id: str) -> bytes:
    """Serialize the token payload. Raises EncodingError for unusable identifiers."""
    _validate_student_id(student_id)
    return json.dumps({STUDENT_ID_KEY: student_id}, separators=(",", ":")).encode("utf-8")


def render_png(text: str) -> bytes:
    """Render text as a PNG QR symbol."""
    try:
        qr = qrcode.QRCode(box_size=QR_BOX_SIZE, border=QR_BORDER)
        qr.add_data(text)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    except (DataOverflowError, ValueError, OSError) as e:
        raise EncodingError(f"Could not render QR code: {e}") from e
    return buf.getvalue()


def encode_student_token(student_id: str) -> IssuedToken:
    """
    Issue the token for a stored student.

    The caller must have persisted the student already; this function does
    not look anything up.
    """
    payload = build_payload(student_id)
    image_png = render_png(payload.decode("utf-8"))

    log_with_context(logger, "DEBUG", "Token issued",
                     context={"student_id": student_id},
                     extra_data={"payload_bytes": len(payload), "image_bytes": len(image_png)})
    return IssuedToken(student_id=student_id, payload=payload, image_png=image_png)


def _parse_structured(parsed) -> Optional[StructuredToken]:
    if not isinstance(parsed, dict):
        return None
    student_id = parsed.get(STUDENT_ID_KEY)
    if isinstance(student_id, str) and student_id:
        return StructuredToken(student_id=student_id)
    return None


def _parse_legacy(text: str) -> Optional[LegacyToken]:
    parts = text.split(LEGACY_SEPARATOR)
    if len(parts) != LEGACY_FIELD_COUNT:
        return None
    name, email, phone, college, department = (p.strip() for p in parts)
    if not email:
        return None
    return LegacyToken(name=name, email=email, phone=phone, college=college, department=department)


def decode_token(scanned) -> DecodedToken:
    """
    Classify a scanned string. Never raises.

    Accepts str or bytes (UTF-8). Surrounding whitespace from the scanner is
    ignored.
    """
    if isinstance(scanned, bytes):
        try:
            scanned = scanned.decode("utf-8")
        except UnicodeDecodeError:
            return UnrecognizedToken(raw=repr(scanned))
    if not isinstance(scanned, str):
        return UnrecognizedToken(raw=repr(scanned))

    text = scanned.strip()
    if not text:
        return UnrecognizedToken(raw=scanned)

    # Valid JSON is only ever a structured token; legacy tokens are never JSON
    try:
        token = _parse_structured(json.loads(text))
    except (ValueError, RecursionError):
        # Malformed or too deeply nested to be JSON
        token = _parse_legacy(text)
    if token is None:
        log_with_context(logger, "DEBUG", "Unrecognized token",
                         extra_data={"length": len(text)})
        return UnrecognizedToken(raw=scanned)
    return token
