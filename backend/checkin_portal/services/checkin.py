"""
Check-in Service - resolves a scanned token and marks the student as arrived.

Pipeline for one scan:
1. Decode: structured {"studentId": ...} or legacy "name|email|phone|college|department"
2. Resolve: exact lookup by id (structured) or normalized email (legacy)
3. Scope: with an event_id the marker lives on the student's registration
   for that event, otherwise on the student row
4. Idempotency: a marker that is already set ends the scan as ALREADY_CHECKED_IN
5. Apply: conditional update that only writes while the marker is NULL

Every outcome is returned as a CheckInResult; check_in() never raises for
bad tokens or store failures.

Concurrency: two stations scanning the same token can both pass step 4.
Step 5 is what keeps the marker single-valued: the loser's conditional
update changes no rows, the row is re-read, and the loser reports
ALREADY_CHECKED_IN with the winner's timestamp. This holds only when the
record store applies only_if_null atomically with the write.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from checkin_portal.logging_config import get_logger, log_with_context, timed
from checkin_portal.services.registration import normalize_email
from checkin_portal.services.tokens import LegacyToken, StructuredToken, UnrecognizedToken, decode_token
from checkin_portal.store.base import RecordStore, RecordStoreError, Row

logger = get_logger("checkin")

MARKER = "checked_in_at"


class CheckInStatus(str, Enum):
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"


class RejectReason(str, Enum):
    MALFORMED_TOKEN = "MALFORMED_TOKEN"
    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    NOT_REGISTERED = "NOT_REGISTERED"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


REJECT_MESSAGES = {
    RejectReason.MALFORMED_TOKEN: "Invalid QR code",
    RejectReason.STUDENT_NOT_FOUND: "Student not found",
    RejectReason.NOT_REGISTERED: "Student is not registered for this event",
    RejectReason.STORE_UNAVAILABLE: "Check-in service unavailable, please scan again",
}


class CheckInResult(BaseModel):
    """Terminal state of one scan."""
    status: CheckInStatus
    reason: Optional[RejectReason] = None
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    event_id: Optional[str] = None
    checked_in_at: Optional[datetime] = None

    @property
    def applied(self) -> bool:
        return self.status == CheckInStatus.APPLIED

    @property
    def message(self) -> str:
        name = self.student_name or "Student"
        if self.applied:
            return f"Check-in successful for {name}!"
        if self.reason == RejectReason.ALREADY_CHECKED_IN:
            when = self.checked_in_at.isoformat() if self.checked_in_at else "an earlier scan"
            return f"{name} already checked in at {when}"
        return REJECT_MESSAGES.get(self.reason, "Check-in rejected")


def _rejected(reason: RejectReason, student: Row = None, event_id: str = None,
              checked_in_at=None) -> CheckInResult:
    return CheckInResult(
        status=CheckInStatus.REJECTED,
        reason=reason,
        student_id=student.get("id") if student else None,
        student_name=student.get("name") if student else None,
        event_id=event_id,
        checked_in_at=checked_in_at,
    )


async def resolve_student(store: RecordStore, token) -> Optional[Row]:
    """Look up the one student a decoded token refers to. Exact match only."""
    if isinstance(token, StructuredToken):
        return await store.find_one("students", {"id": token.student_id})
    if isinstance(token, LegacyToken):
        return await store.find_one("students", {"email": normalize_email(token.email)})
    return None


async def check_in(store: RecordStore, scanned_payload, event_id: str = None,
                   now: datetime = None) -> CheckInResult:
    """
    Process one scan event.

    Args:
        store: Record store holding students and registrations
        scanned_payload: Text read from the QR code
        event_id: Check in to this event's registration instead of globally
        now: Timestamp to record (defaults to current UTC time)

    Returns:
        CheckInResult: APPLIED, or REJECTED with a reason
    """
    with timed() as timing:
        result = await _check_in(store, scanned_payload, event_id, now)

    log_with_context(logger, "INFO" if result.reason != RejectReason.STORE_UNAVAILABLE else "WARNING",
        "Scan {}: {}".format(result.status.value, result.reason.value if result.reason else "ok"),
        context={"student_id": result.student_id, "event_id": event_id},
        extra_data={"duration_ms": timing["duration_ms"]})
    return result


async def _check_in(store: RecordStore, scanned_payload, event_id, now) -> CheckInResult:
    token = decode_token(scanned_payload)
    if isinstance(token, UnrecognizedToken):
        return _rejected(RejectReason.MALFORMED_TOKEN, event_id=event_id)

    try:
        student = await resolve_student(store, token)
        if student is None:
            return _rejected(RejectReason.STUDENT_NOT_FOUND, event_id=event_id)

        if event_id is None:
            table, match, marked = "students", {"id": student["id"]}, student
            missing = RejectReason.STUDENT_NOT_FOUND
        else:
            table = "event_registrations"
            match = {"student_id": student["id"], "event_id": event_id}
            marked = await store.find_one(table, match)
            missing = RejectReason.NOT_REGISTERED
            if marked is None:
                return _rejected(missing, student, event_id)

        if marked.get(MARKER) is not None:
            return _rejected(RejectReason.ALREADY_CHECKED_IN, student, event_id, marked[MARKER])

        stamp = now or datetime.now(timezone.utc)
        updated = await store.update(table, match, {MARKER: stamp}, only_if_null=MARKER)
        if updated:
            return CheckInResult(
                status=CheckInStatus.APPLIED,
                student_id=student["id"],
                student_name=student.get("name"),
                event_id=event_id,
                checked_in_at=updated[0].get(MARKER) or stamp,
            )

        # Conditional write matched nothing: another scan got there first,
        # or the row disappeared in between
        current = await store.find_one(table, match)
        if current is None:
            return _rejected(missing, student, event_id)
        if current.get(MARKER) is not None:
            log_with_context(logger, "INFO", "Lost check-in race to a concurrent scan",
                             context={"student_id": student["id"], "event_id": event_id})
            return _rejected(RejectReason.ALREADY_CHECKED_IN, student, event_id, current[MARKER])
        raise RecordStoreError(f"Conditional update on {table} changed nothing but marker is still unset")
    except RecordStoreError as e:
        log_with_context(logger, "ERROR", "Record store failure during check-in",
                         context={"event_id": event_id},
                         extra_data={"error": str(e), "error_type": type(e).__name__})
        return _rejected(RejectReason.STORE_UNAVAILABLE, event_id=event_id)
