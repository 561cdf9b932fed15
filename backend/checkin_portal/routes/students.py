"""
Students API routes - registration, profile management and QR images.

Provides endpoints for:
- Registering a student (issues the QR token)
- Listing and viewing students with their check-in state
- Editing and deleting student profiles
- Downloading a student's QR code as PNG
- Clearing a check-in marker (administrative override)
"""

import time
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from checkin_portal.services import registration
from checkin_portal.services.tokens import EncodingError, encode_student_token
from checkin_portal.store import RecordStore, RecordStoreError, get_store
from checkin_portal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StudentCreate(BaseModel):
    """Schema for the student registration form."""
    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., min_length=3, description="Email, unique per student")
    phone: str = Field(..., min_length=1, description="Contact phone")
    college: str = Field(..., min_length=1, description="College / primary affiliation")
    department: str = Field(..., min_length=1, description="Department / secondary affiliation")


class StudentUpdate(BaseModel):
    """Schema for profile edits; omitted fields are left unchanged."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None
    department: Optional[str] = None


class ResetCheckInRequest(BaseModel):
    """Which marker to clear: the student's own, or one event registration's."""
    event_id: Optional[str] = None


def raise_for_registration_error(e: Exception):
    """Translate service exceptions into HTTP errors."""
    if isinstance(e, (registration.StudentNotFound, registration.EventNotFound,
                      registration.StudentProfileMissing, registration.NotRegistered)):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (registration.DuplicateStudent, registration.AlreadyRegistered)):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, registration.RegistrationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, EncodingError):
        raise HTTPException(status_code=400, detail="Failed to generate QR code: {}".format(e))
    if isinstance(e, RecordStoreError):
        log_with_context(logger, "ERROR", "Record store failure",
                         extra_data={"error": str(e), "error_type": type(e).__name__})
        raise HTTPException(status_code=503, detail="Record store unavailable")
    raise e


def serialize_student(student: dict, include_qr: bool = True) -> dict:
    """Shape a student row for API responses."""
    result = {
        "id": str(student["id"]),
        "name": student.get("name"),
        "email": student.get("email"),
        "phone": student.get("phone"),
        "college": student.get("college"),
        "department": student.get("department"),
        "checked_in": student.get("checked_in_at") is not None,
        "checked_in_at": student.get("checked_in_at"),
        "created_at": student.get("created_at"),
    }
    if include_qr:
        result["qr_code"] = student.get("qr_code")
    return result


@router.post("/api/students", status_code=201)
async def create_student(request: StudentCreate, store: RecordStore = Depends(get_store)):
    """Register a student and return the record with its QR code."""
    try:
        student, token = await registration.register_student(
            store,
            name=request.name,
            email=request.email,
            phone=request.phone,
            college=request.college,
            department=request.department,
        )
    except (registration.RegistrationError, EncodingError, RecordStoreError) as e:
        raise_for_registration_error(e)

    return {
        "message": "Student registered successfully!",
        "student": serialize_student(student),
        "token": token.text,
    }


@router.get("/api/students")
async def list_students(
    search: Optional[str] = Query(None, description="Search name/email/phone"),
    checked_in: Optional[bool] = Query(None, description="Filter by check-in state"),
    include_qr: bool = Query(False, description="Include QR data URLs"),
    store: RecordStore = Depends(get_store)
):
    """List students, newest first."""
    start_time = time.time()
    try:
        students = await store.find("students", {})
    except RecordStoreError as e:
        raise_for_registration_error(e)

    if search:
        needle = search.strip().lower()
        students = [
            s for s in students
            if any(needle in str(s.get(f) or "").lower() for f in ("name", "email", "phone"))
        ]
    if checked_in is not None:
        students = [s for s in students if (s.get("checked_in_at") is not None) == checked_in]
    students.sort(key=lambda s: str(s.get("created_at") or ""), reverse=True)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} students".format(len(students)),
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "data": [serialize_student(s, include_qr=include_qr) for s in students],
        "total": len(students),
        "checked_in": sum(1 for s in students if s.get("checked_in_at") is not None),
    }


@router.get("/api/students/{student_id}")
async def get_student(student_id: str, store: RecordStore = Depends(get_store)):
    """Get one student with check-in state and QR code."""
    try:
        student = await registration.get_student(store, student_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)
    return serialize_student(student)


@router.patch("/api/students/{student_id}")
async def update_student(student_id: str, request: StudentUpdate,
                         store: RecordStore = Depends(get_store)):
    """Edit profile fields."""
    try:
        student = await registration.update_student(
            store, student_id, request.model_dump(exclude_none=True))
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)
    return serialize_student(student)


@router.delete("/api/students/{student_id}")
async def delete_student(student_id: str, store: RecordStore = Depends(get_store)):
    """Delete a student and their event registrations."""
    try:
        await registration.delete_student(store, student_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)
    return {"message": "Student deleted", "student_id": student_id}


@router.get("/api/students/{student_id}/qr.png")
async def student_qr(student_id: str, store: RecordStore = Depends(get_store)):
    """Render the student's QR token as a PNG download."""
    try:
        student = await registration.get_student(store, student_id)
        token = encode_student_token(str(student["id"]))
    except (registration.RegistrationError, EncodingError, RecordStoreError) as e:
        raise_for_registration_error(e)

    filename = "{}_qr.png".format((student.get("name") or "student").replace(" ", "_"))
    return Response(
        content=token.image_png,
        media_type="image/png",
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@router.post("/api/students/{student_id}/reset-checkin")
async def reset_checkin(student_id: str, request: Optional[ResetCheckInRequest] = None,
                        store: RecordStore = Depends(get_store)):
    """Clear a check-in marker so the student can be scanned again."""
    event_id = request.event_id if request else None
    try:
        row = await registration.reset_check_in(store, student_id, event_id=event_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)

    log_with_context(logger, "WARNING", "Check-in reset for student {}".format(student_id),
                     context={"student_id": student_id, "event_id": event_id})
    return {"message": "Check-in reset", "student_id": student_id, "event_id": event_id,
            "checked_in_at": row.get("checked_in_at")}
