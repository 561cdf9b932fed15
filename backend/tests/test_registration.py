import pytest

from conftest import add_student, run
from checkin_portal.services import registration
from checkin_portal.services.checkin import check_in
from checkin_portal.services.tokens import StructuredToken, decode_token


def register(store, **overrides):
    fields = {
        "name": "Asha Rao",
        "email": "Asha@Example.edu ",
        "phone": "555-0100",
        "college": "Engineering College",
        "department": "Computer Science",
    }
    fields.update(overrides)
    return run(registration.register_student(store, **fields))


def test_register_student_issues_token_for_stored_id(store):
    student, token = register(store)

    assert student["email"] == "asha@example.edu"
    assert decode_token(token.payload) == StructuredToken(student["id"])
    assert student["qr_code"] == token.data_url
    assert student["checked_in_at"] is None


def test_duplicate_email_is_rejected_case_insensitively(store):
    register(store)
    with pytest.raises(registration.DuplicateStudent):
        register(store, email="ASHA@example.edu")


def test_register_requires_email(memory_store):
    with pytest.raises(registration.IncompleteProfile):
        register(memory_store, email="   ")


def test_update_student_cannot_touch_marker_and_rechecks_email(memory_store):
    student, _ = register(memory_store)
    other, _ = register(memory_store, email="other@example.edu")

    updated = run(registration.update_student(memory_store, student["id"], {
        "phone": " 555-0199 ",
        "checked_in_at": "2025-01-01T00:00:00",
    }))
    assert updated["phone"] == "555-0199"
    assert updated["checked_in_at"] is None

    with pytest.raises(registration.DuplicateStudent):
        run(registration.update_student(memory_store, student["id"], {"email": "OTHER@example.edu"}))


def test_delete_student_removes_registrations(memory_store):
    student, _ = register(memory_store)
    event = run(registration.create_event(memory_store, "Orientation"))
    run(registration.register_for_event(memory_store, event["id"], student["email"]))

    run(registration.delete_student(memory_store, student["id"]))
    assert run(memory_store.find("event_registrations", {})) == []
    with pytest.raises(registration.StudentNotFound):
        run(registration.get_student(memory_store, student["id"]))


def test_register_for_event_rules(store):
    event = run(registration.create_event(store, "Orientation"))

    with pytest.raises(registration.StudentProfileMissing):
        run(registration.register_for_event(store, event["id"], "ghost@example.edu"))

    add_student(store, email="partial@example.edu", college=None)
    with pytest.raises(registration.IncompleteProfile):
        run(registration.register_for_event(store, event["id"], "partial@example.edu"))

    student, _ = register(store)
    registered = run(registration.register_for_event(store, event["id"], " ASHA@example.edu"))
    assert registered["student_id"] == student["id"]
    assert registered["checked_in_at"] is None

    with pytest.raises(registration.AlreadyRegistered):
        run(registration.register_for_event(store, event["id"], student["email"]))

    with pytest.raises(registration.EventNotFound):
        run(registration.register_for_event(store, "no-such-event", student["email"]))


def test_list_event_registrations_attaches_students(memory_store):
    student, _ = register(memory_store)
    event = run(registration.create_event(memory_store, "Orientation"))
    run(registration.register_for_event(memory_store, event["id"], student["email"]))

    rows = run(registration.list_event_registrations(memory_store, event["id"]))
    assert len(rows) == 1
    assert rows[0]["student"]["id"] == student["id"]


def test_reset_check_in_allows_scanning_again(memory_store):
    student, token = register(memory_store)
    assert run(check_in(memory_store, token.text)).applied

    cleared = run(registration.reset_check_in(memory_store, student["id"]))
    assert cleared["checked_in_at"] is None
    assert run(check_in(memory_store, token.text)).applied


def test_reset_check_in_for_unregistered_event(memory_store):
    student, _ = register(memory_store)
    event = run(registration.create_event(memory_store, "Orientation"))
    with pytest.raises(registration.NotRegistered):
        run(registration.reset_check_in(memory_store, student["id"], event_id=event["id"]))


def test_reissue_tokens_replaces_legacy_images(memory_store):
    legacy = add_student(memory_store, qr_code="data:image/png;base64,legacy")
    add_student(memory_store, email="fresh@example.edu")

    summary = run(registration.reissue_tokens(memory_store))
    assert summary == {"total": 2, "success": 2, "failed": 0, "errors": []}

    refreshed = run(memory_store.find_one("students", {"id": legacy["id"]}))
    assert refreshed["qr_code"].startswith("data:image/png;base64,iVBOR")


def test_reissue_tokens_collects_failures(memory_store):
    add_student(memory_store, id=" bad id ", email="bad@example.edu")
    add_student(memory_store, email="good@example.edu")

    summary = run(registration.reissue_tokens(memory_store))
    assert summary["success"] == 1
    assert summary["failed"] == 1
    assert summary["errors"][0].startswith("Asha Rao:")


def test_list_events_orders_undated_last(memory_store):
    from datetime import datetime

    run(registration.create_event(memory_store, "Undated"))
    run(registration.create_event(memory_store, "Later", date=datetime(2025, 9, 1)))
    run(registration.create_event(memory_store, "Sooner", date=datetime(2025, 8, 1)))

    names = [e["name"] for e in run(registration.list_events(memory_store))]
    assert names == ["Sooner", "Later", "Undated"]
