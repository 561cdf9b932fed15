import asyncio
import pathlib
import sys

import pytest
from sqlalchemy import create_engine

BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from checkin_portal.database import create_tables
from checkin_portal.store.memory import MemoryRecordStore
from checkin_portal.store.sql import SqlRecordStore


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def sql_store(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'checkin.db'}",
        connect_args={"check_same_thread": False},
    )
    create_tables(engine)
    yield SqlRecordStore(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Run a test once per bundled local backend."""
    return request.getfixturevalue(f"{request.param}_store")


def add_student(store, **fields):
    row = {
        "name": "Asha Rao",
        "email": "asha@example.edu",
        "phone": "555-0100",
        "college": "Engineering College",
        "department": "Computer Science",
    }
    row.update(fields)
    return run(store.insert("students", row))
