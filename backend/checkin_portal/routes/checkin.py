"""
Check-in API route - one POST per scan from a door station.

APPLIED and ALREADY_CHECKED_IN both answer 200 so the station can show a
confirmation; the body's status/reason tell them apart. Every other
rejection carries an error status code with the same body shape.
"""

from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from checkin_portal.services.checkin import RejectReason, check_in
from checkin_portal.store import RecordStore, get_store
from checkin_portal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

REASON_STATUS_CODES = {
    None: 200,
    RejectReason.ALREADY_CHECKED_IN: 200,
    RejectReason.MALFORMED_TOKEN: 422,
    RejectReason.STUDENT_NOT_FOUND: 404,
    RejectReason.NOT_REGISTERED: 404,
    RejectReason.STORE_UNAVAILABLE: 503,
}


class ScanRequest(BaseModel):
    """Text decoded from a QR code by the scanner."""
    payload: str = Field(..., description="Raw scanned text")
    event_id: Optional[str] = Field(None, description="Check in to this event instead of globally")


@router.post("/api/checkin")
async def scan(request: ScanRequest, store: RecordStore = Depends(get_store)):
    """Resolve a scanned QR code and mark the student as checked in."""
    result = await check_in(store, request.payload, event_id=request.event_id)

    log_with_context(logger, "INFO", "Scan handled: {}".format(result.message),
                     context={"student_id": result.student_id, "event_id": request.event_id},
                     extra_data={"status": result.status.value,
                                 "reason": result.reason.value if result.reason else None})

    body = jsonable_encoder(result)
    body["message"] = result.message
    return JSONResponse(status_code=REASON_STATUS_CODES[result.reason], content=body)
