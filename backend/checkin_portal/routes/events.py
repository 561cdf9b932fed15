"""
Events API routes - event creation and per-event registrations.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from checkin_portal.routes.students import raise_for_registration_error, serialize_student
from checkin_portal.services import registration
from checkin_portal.store import RecordStore, RecordStoreError, get_store

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class EventCreate(BaseModel):
    """Schema for creating an event."""
    name: str = Field(..., min_length=1)
    date: Optional[datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None


class EventRegistrationRequest(BaseModel):
    """A student registers for an event with the email on their profile."""
    email: str = Field(..., min_length=3)


@router.post("/api/events", status_code=201)
async def create_event(request: EventCreate, store: RecordStore = Depends(get_store)):
    """Create an event."""
    try:
        event = await registration.create_event(
            store, request.name, date=request.date,
            location=request.location, description=request.description)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)
    return event


@router.get("/api/events")
async def list_events(store: RecordStore = Depends(get_store)):
    """All events, soonest first."""
    try:
        events = await registration.list_events(store)
    except RecordStoreError as e:
        raise_for_registration_error(e)
    return {"data": events, "total": len(events)}


@router.get("/api/events/{event_id}")
async def get_event(event_id: str, store: RecordStore = Depends(get_store)):
    try:
        return await registration.get_event(store, event_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)


@router.post("/api/events/{event_id}/registrations", status_code=201)
async def register_for_event(event_id: str, request: EventRegistrationRequest,
                             store: RecordStore = Depends(get_store)):
    """Register an existing student for an event and hand back their QR code."""
    try:
        registered = await registration.register_for_event(store, event_id, request.email)
        student = await registration.get_student(store, registered["student_id"])
        event = await registration.get_event(store, event_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)

    return {
        "message": "Successfully registered for {}!".format(event["name"]),
        "registration": registered,
        "student": serialize_student(student),
    }


@router.get("/api/events/{event_id}/registrations")
async def list_registrations(event_id: str, store: RecordStore = Depends(get_store)):
    """Registrations for an event with student details and per-event check-in state."""
    try:
        registrations = await registration.list_event_registrations(store, event_id)
    except (registration.RegistrationError, RecordStoreError) as e:
        raise_for_registration_error(e)

    data = [
        {
            "id": r["id"],
            "event_id": r["event_id"],
            "registered_at": r.get("registered_at"),
            "checked_in": r.get("checked_in_at") is not None,
            "checked_in_at": r.get("checked_in_at"),
            "student": serialize_student(r["student"], include_qr=False) if r.get("student") else None,
        }
        for r in registrations
    ]
    return {
        "data": data,
        "total": len(data),
        "checked_in": sum(1 for r in data if r["checked_in"]),
    }
