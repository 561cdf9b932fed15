import json
from datetime import datetime

import httpx
import pytest

from conftest import add_student, run
from checkin_portal.services.checkin import RejectReason, check_in
from checkin_portal.services.tokens import encode_student_token
from checkin_portal.store import build_store
from checkin_portal.store.base import DuplicateRecord, RecordStoreError, StoreUnavailable
from checkin_portal.store.memory import MemoryRecordStore
from checkin_portal.store.postgrest import PostgrestRecordStore


# ── Contract shared by the local backends ────────────────────

def test_insert_generates_id_and_find_returns_copy(store):
    student = add_student(store)
    assert student["id"]
    found = run(store.find_one("students", {"id": student["id"]}))
    assert found["email"] == "asha@example.edu"

    found["name"] = "changed"
    assert run(store.find_one("students", {"id": student["id"]}))["name"] == "Asha Rao"


def test_find_with_empty_match_returns_all(store):
    add_student(store, email="a@example.edu")
    add_student(store, email="b@example.edu")
    assert len(run(store.find("students", {}))) == 2


def test_unique_email_is_enforced(store):
    add_student(store)
    with pytest.raises(DuplicateRecord):
        add_student(store, name="Someone Else")


def test_find_one_rejects_ambiguous_match(store):
    add_student(store, email="a@example.edu", college="Same")
    add_student(store, email="b@example.edu", college="Same")
    with pytest.raises(RecordStoreError):
        run(store.find_one("students", {"college": "Same"}))


def test_conditional_update_only_touches_null_marker(store):
    student = add_student(store)
    first = run(store.update("students", {"id": student["id"]},
                             {"checked_in_at": datetime(2025, 7, 26, 9, 0)},
                             only_if_null="checked_in_at"))
    assert len(first) == 1

    second = run(store.update("students", {"id": student["id"]},
                              {"checked_in_at": datetime(2025, 7, 26, 10, 0)},
                              only_if_null="checked_in_at"))
    assert second == []
    stored = run(store.find_one("students", {"id": student["id"]}))
    assert stored["checked_in_at"] == datetime(2025, 7, 26, 9, 0)


def test_update_without_match_returns_nothing(store):
    assert run(store.update("students", {"id": "missing"}, {"name": "x"})) == []


def test_delete_reports_count(store):
    a = add_student(store, email="a@example.edu")
    add_student(store, email="b@example.edu")
    assert run(store.delete("students", {"id": a["id"]})) == 1
    assert run(store.delete("students", {"id": a["id"]})) == 0
    assert len(run(store.find("students", {}))) == 1


def test_sql_store_rejects_unknown_table_and_column(sql_store):
    with pytest.raises(RecordStoreError):
        run(sql_store.find("nope", {}))
    with pytest.raises(RecordStoreError):
        run(sql_store.find("students", {"nope": 1}))


def test_sql_store_maps_database_errors_to_unavailable(sql_store):
    class DeadEngine:
        dialect = sql_store.engine.dialect

        def connect(self):
            from sqlalchemy.exc import OperationalError
            raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

        begin = connect

    sql_store.engine = DeadEngine()
    with pytest.raises(StoreUnavailable):
        run(sql_store.find("students", {}))


def test_build_store_selects_backend():
    assert isinstance(build_store("memory"), MemoryRecordStore)
    with pytest.raises(RuntimeError):
        build_store("carrier-pigeon")


# ── PostgREST backend against a fake REST server ─────────────

class FakePostgrest:
    """Just enough of PostgREST's filter grammar for the record store calls."""

    def __init__(self):
        self.tables = {}
        self.requests = []
        self.fail_with = None
        self.next_id = 0

    def _matches(self, row, params):
        for column, expr in params.items():
            if column == "select":
                continue
            op, _, value = expr.partition(".")
            if op == "eq" and str(row.get(column)) != value:
                return False
            if op == "is" and value == "null" and row.get(column) is not None:
                return False
        return True

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "upstream failure"})

        table = request.url.path.rsplit("/", 1)[-1]
        rows = self.tables.setdefault(table, [])
        params = dict(request.url.params)

        if request.method == "GET":
            return httpx.Response(200, json=[r for r in rows if self._matches(r, params)])
        if request.method == "POST":
            row = json.loads(request.content)
            if table == "students" and any(r["email"] == row["email"] for r in rows):
                return httpx.Response(409, json={"code": "23505"})
            self.next_id += 1
            row.setdefault("id", f"row-{self.next_id}")
            row.setdefault("checked_in_at", None)
            rows.append(row)
            return httpx.Response(201, json=[row])
        if request.method == "PATCH":
            patch = json.loads(request.content)
            changed = [r for r in rows if self._matches(r, params)]
            for r in changed:
                r.update(patch)
            return httpx.Response(200, json=changed)
        if request.method == "DELETE":
            removed = [r for r in rows if self._matches(r, params)]
            self.tables[table] = [r for r in rows if r not in removed]
            return httpx.Response(200, json=removed)
        return httpx.Response(405)


@pytest.fixture
def fake_server():
    return FakePostgrest()


@pytest.fixture
def rest_store(fake_server):
    return PostgrestRecordStore("https://project.supabase.co/", "anon-key",
                                transport=httpx.MockTransport(fake_server))


def test_postgrest_sends_auth_headers_and_filters(rest_store, fake_server):
    run(rest_store.find("students", {"email": "asha@example.edu"}))
    request = fake_server.requests[-1]
    assert request.url.path == "/rest/v1/students"
    assert request.url.params["email"] == "eq.asha@example.edu"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"


def test_postgrest_conditional_update_sends_is_null_filter(rest_store, fake_server):
    student = run(rest_store.insert("students", {"name": "Asha", "email": "asha@example.edu"}))
    updated = run(rest_store.update("students", {"id": student["id"]},
                                    {"checked_in_at": datetime(2025, 7, 26, 9, 0)},
                                    only_if_null="checked_in_at"))
    request = fake_server.requests[-1]
    assert request.method == "PATCH"
    assert request.url.params["checked_in_at"] == "is.null"
    assert request.headers["prefer"] == "return=representation"
    assert updated[0]["checked_in_at"] == "2025-07-26T09:00:00"


def test_postgrest_check_in_flow_end_to_end(rest_store):
    student = run(rest_store.insert("students", {"name": "Asha", "email": "asha@example.edu"}))
    payload = encode_student_token(student["id"]).text

    first = run(check_in(rest_store, payload))
    second = run(check_in(rest_store, payload))
    assert first.applied
    assert second.reason == RejectReason.ALREADY_CHECKED_IN
    assert second.checked_in_at == first.checked_in_at


def test_postgrest_conflict_maps_to_duplicate(rest_store):
    run(rest_store.insert("students", {"name": "Asha", "email": "asha@example.edu"}))
    with pytest.raises(DuplicateRecord):
        run(rest_store.insert("students", {"name": "Asha", "email": "asha@example.edu"}))


def test_postgrest_server_error_maps_to_unavailable(rest_store, fake_server):
    fake_server.fail_with = 503
    with pytest.raises(StoreUnavailable):
        run(rest_store.find("students", {}))


def test_postgrest_client_error_maps_to_store_error(rest_store, fake_server):
    fake_server.fail_with = 400
    with pytest.raises(RecordStoreError) as excinfo:
        run(rest_store.find("students", {}))
    assert not isinstance(excinfo.value, StoreUnavailable)


def test_postgrest_transport_error_makes_check_in_unavailable():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = PostgrestRecordStore("https://project.supabase.co", "anon-key",
                                 transport=httpx.MockTransport(unreachable))
    result = run(check_in(store, '{"studentId":"abc-123"}'))
    assert result.reason == RejectReason.STORE_UNAVAILABLE


def test_timestamp_columns_keep_their_offset():
    from checkin_portal.models import Event, EventRegistration, Student

    for column in (Student.checked_in_at, Student.created_at, Event.date,
                   EventRegistration.registered_at, EventRegistration.checked_in_at):
        assert column.type.timezone is True
