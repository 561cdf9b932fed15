"""
Registration Service - students, events and event registrations.

Student registration:
1. Normalize the email (strip + lower-case) and reject duplicates
2. Insert the student to obtain its durable id
3. Issue the QR token from that id and store the rendered image on the row

Event registration requires an existing, complete student profile and at
most one registration per (student, event).

Check-in markers are never written here except by reset_check_in(), the
explicit administrative override.
"""

from datetime import datetime, timezone
from typing import Optional

from checkin_portal.logging_config import get_logger, log_with_context
from checkin_portal.services.tokens import EncodingError, encode_student_token
from checkin_portal.store.base import DuplicateRecord, RecordStore, RecordStoreError, Row

logger = get_logger("registration")

PROFILE_FIELDS = ("name", "email", "phone", "college", "department")


class RegistrationError(Exception):
    """Base class for registration failures the caller should show the user."""


class DuplicateStudent(RegistrationError):
    pass


class StudentNotFound(RegistrationError):
    pass


class EventNotFound(RegistrationError):
    pass


class StudentProfileMissing(RegistrationError):
    pass


class IncompleteProfile(RegistrationError):
    pass


class AlreadyRegistered(RegistrationError):
    pass


class NotRegistered(RegistrationError):
    pass


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Canonical stored form of an email: surrounding whitespace removed,
    lower-cased. No other rewriting, so lookups stay exact.
    """
    if not email:
        return None
    email = email.strip().lower()
    return email or None


def _clean(value):
    return value.strip() if isinstance(value, str) else value


async def get_student(store: RecordStore, student_id: str) -> Row:
    student = await store.find_one("students", {"id": student_id})
    if student is None:
        raise StudentNotFound(f"Student {student_id} not found")
    return student


async def register_student(store: RecordStore, name: str, email: str, phone: str = None,
                           college: str = None, department: str = None):
    """
    Create a student and issue their QR token.

    Returns:
        (student row including qr_code, IssuedToken)

    Raises:
        DuplicateStudent: the email is already registered
        EncodingError: the token could not be rendered; the student row
            stays and can be fixed with reissue_tokens()
    """
    email = normalize_email(email)
    if not email:
        raise IncompleteProfile("Email is required")
    name = _clean(name)
    if not name:
        raise IncompleteProfile("Name is required")

    if await store.find_one("students", {"email": email}):
        raise DuplicateStudent("A student with this email already exists!")

    try:
        student = await store.insert("students", {
            "name": name,
            "email": email,
            "phone": _clean(phone),
            "college": _clean(college),
            "department": _clean(department),
            "created_at": datetime.now(timezone.utc),
        })
    except DuplicateRecord as e:
        # Lost a race with a concurrent registration for the same email
        raise DuplicateStudent("A student with this email already exists!") from e

    token = encode_student_token(student["id"])
    updated = await store.update("students", {"id": student["id"]}, {"qr_code": token.data_url})
    if updated:
        student = updated[0]

    log_with_context(logger, "INFO", "Registered student: {}".format(name),
                     context={"student_id": student["id"]},
                     extra_data={"email": email})
    return student, token


async def update_student(store: RecordStore, student_id: str, changes: dict) -> Row:
    """
    Edit profile fields. Only PROFILE_FIELDS are accepted; the check-in
    marker and QR image cannot be changed here.
    """
    await get_student(store, student_id)

    patch = {k: _clean(v) for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
        if not patch["email"]:
            raise IncompleteProfile("Email cannot be empty")
        existing = await store.find_one("students", {"email": patch["email"]})
        if existing and existing["id"] != student_id:
            raise DuplicateStudent("A student with this email already exists!")
    if "name" in patch and not patch["name"]:
        raise IncompleteProfile("Name cannot be empty")
    if not patch:
        return await get_student(store, student_id)

    try:
        updated = await store.update("students", {"id": student_id}, patch)
    except DuplicateRecord as e:
        raise DuplicateStudent("A student with this email already exists!") from e
    if not updated:
        raise StudentNotFound(f"Student {student_id} not found")

    log_with_context(logger, "INFO", "Updated student profile",
                     context={"student_id": student_id},
                     extra_data={"fields": sorted(patch)})
    return updated[0]


async def delete_student(store: RecordStore, student_id: str):
    """Remove a student and their event registrations."""
    await get_student(store, student_id)
    await store.delete("event_registrations", {"student_id": student_id})
    await store.delete("students", {"id": student_id})
    log_with_context(logger, "INFO", "Deleted student", context={"student_id": student_id})


async def reset_check_in(store: RecordStore, student_id: str, event_id: str = None) -> Row:
    """
    Administrative override: clear a check-in marker so the student can be
    scanned again. Global marker without event_id, the event registration's
    marker with it.
    """
    student = await get_student(store, student_id)
    if event_id is None:
        updated = await store.update("students", {"id": student_id}, {"checked_in_at": None})
    else:
        updated = await store.update("event_registrations",
                                     {"student_id": student_id, "event_id": event_id},
                                     {"checked_in_at": None})
        if not updated:
            raise NotRegistered(f"Student {student_id} is not registered for event {event_id}")

    log_with_context(logger, "WARNING", "Check-in marker cleared by administrator",
                     context={"student_id": student_id, "event_id": event_id})
    return updated[0] if updated else student


async def create_event(store: RecordStore, name: str, date: datetime = None,
                       location: str = None, description: str = None) -> Row:
    name = _clean(name)
    if not name:
        raise RegistrationError("Event name is required")
    event = await store.insert("events", {
        "name": name,
        "date": date,
        "location": _clean(location),
        "description": _clean(description),
        "created_at": datetime.now(timezone.utc),
    })
    log_with_context(logger, "INFO", "Created event: {}".format(name),
                     context={"event_id": event["id"]})
    return event


async def get_event(store: RecordStore, event_id: str) -> Row:
    event = await store.find_one("events", {"id": event_id})
    if event is None:
        raise EventNotFound(f"Event {event_id} not found")
    return event


async def list_events(store: RecordStore) -> list:
    """All events, soonest first; undated events last."""
    events = await store.find("events", {})
    return sorted(events, key=lambda e: (e.get("date") is None, str(e.get("date") or "")))


async def register_for_event(store: RecordStore, event_id: str, email: str) -> Row:
    """
    Register an existing student (looked up by email) for an event.

    Raises:
        EventNotFound, StudentProfileMissing, IncompleteProfile, AlreadyRegistered
    """
    event = await get_event(store, event_id)

    email = normalize_email(email)
    student = await store.find_one("students", {"email": email}) if email else None
    if student is None:
        raise StudentProfileMissing(
            "Student profile not found! Please complete your student registration first.")

    missing = [f for f in PROFILE_FIELDS if not student.get(f)]
    if missing:
        raise IncompleteProfile(
            "Your student profile is incomplete ({}). Please update your profile first.".format(
                ", ".join(missing)))

    if await store.find_one("event_registrations", {"student_id": student["id"], "event_id": event_id}):
        raise AlreadyRegistered("You are already registered for this event!")

    try:
        registration = await store.insert("event_registrations", {
            "student_id": student["id"],
            "event_id": event_id,
            "registered_at": datetime.now(timezone.utc),
        })
    except DuplicateRecord as e:
        raise AlreadyRegistered("You are already registered for this event!") from e

    log_with_context(logger, "INFO", "Registered {} for {}".format(student["name"], event["name"]),
                     context={"student_id": student["id"], "event_id": event_id})
    return registration


async def list_event_registrations(store: RecordStore, event_id: str) -> list:
    """Registrations for an event, newest first, each with its student row attached."""
    await get_event(store, event_id)
    registrations = await store.find("event_registrations", {"event_id": event_id})
    result = []
    for registration in registrations:
        student = await store.find_one("students", {"id": registration["student_id"]})
        result.append({**registration, "student": student})
    return sorted(result, key=lambda r: str(r.get("registered_at") or ""), reverse=True)


async def reissue_tokens(store: RecordStore) -> dict:
    """
    Regenerate every student's QR image in the structured format.

    Per-student failures are collected rather than raised so one bad row
    does not stop the batch.
    """
    students = await store.find("students", {})
    summary = {"total": len(students), "success": 0, "failed": 0, "errors": []}

    for student in students:
        try:
            token = encode_student_token(student["id"])
            await store.update("students", {"id": student["id"]}, {"qr_code": token.data_url})
            summary["success"] += 1
        except (EncodingError, RecordStoreError) as e:
            summary["failed"] += 1
            summary["errors"].append("{}: {}".format(student.get("name"), e))

    log_with_context(logger, "INFO",
        "Reissued tokens: {} ok, {} failed".format(summary["success"], summary["failed"]),
        extra_data={"total": summary["total"]})
    return summary
