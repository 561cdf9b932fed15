"""
Record store selection.

RECORD_STORE picks the backend:
- sql (default): SQLAlchemy on DATABASE_URL
- postgrest: hosted REST API at SUPABASE_URL, authenticated with SUPABASE_KEY
- memory: process-local, lost on restart
"""

import os

from fastapi import Request

from checkin_portal.store.base import (
    DuplicateRecord, RecordStore, RecordStoreError, Row, StoreUnavailable
)
from checkin_portal.store.memory import MemoryRecordStore

RECORD_STORE = os.getenv("RECORD_STORE", "sql").lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))


def build_store(kind: str = RECORD_STORE) -> RecordStore:
    """Construct the configured record store."""
    if kind == "memory":
        return MemoryRecordStore()
    if kind == "postgrest":
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise RuntimeError("RECORD_STORE=postgrest requires SUPABASE_URL and SUPABASE_KEY")
        from checkin_portal.store.postgrest import PostgrestRecordStore
        return PostgrestRecordStore(SUPABASE_URL, SUPABASE_KEY, timeout=STORE_TIMEOUT_SECONDS)
    if kind == "sql":
        from checkin_portal.database import engine
        from checkin_portal.store.sql import SqlRecordStore
        return SqlRecordStore(engine)
    raise RuntimeError(f"Unknown RECORD_STORE: {kind}")


def get_store(request: Request) -> RecordStore:
    """FastAPI dependency: the store created at application startup."""
    return request.app.state.store


__all__ = [
    "DuplicateRecord", "MemoryRecordStore", "RecordStore", "RecordStoreError",
    "Row", "StoreUnavailable", "build_store", "get_store",
]
