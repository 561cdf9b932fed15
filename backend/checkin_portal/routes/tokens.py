"""
Token API routes - maintenance for issued QR codes.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from checkin_portal.routes.students import raise_for_registration_error
from checkin_portal.services import registration
from checkin_portal.services.tokens import decode_token, LegacyToken, StructuredToken
from checkin_portal.store import RecordStore, RecordStoreError, get_store

router = APIRouter()


class DecodeRequest(BaseModel):
    payload: str


@router.post("/api/tokens/reissue")
async def reissue_tokens(store: RecordStore = Depends(get_store)):
    """
    Regenerate every student's QR code in the current ({"studentId": ...})
    format, replacing legacy pipe-delimited codes.
    """
    try:
        return await registration.reissue_tokens(store)
    except RecordStoreError as e:
        raise_for_registration_error(e)


@router.post("/api/tokens/decode")
def decode(request: DecodeRequest):
    """Show how a scanned payload is classified, without touching the store."""
    token = decode_token(request.payload)
    if isinstance(token, StructuredToken):
        return {"format": "structured", "student_id": token.student_id}
    if isinstance(token, LegacyToken):
        return {"format": "legacy", "email": token.email, "name": token.name}
    return {"format": "unrecognized"}
