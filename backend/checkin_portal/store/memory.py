"""
In-memory record store.

Used by the test suite and by RECORD_STORE=memory for demos. Every call
yields to the event loop once before touching data, so concurrent check-ins
interleave the way they would against a remote store. Each individual call
runs without suspension, which makes update(only_if_null=...) atomic.
"""

import asyncio
import copy
import uuid
from typing import Dict, Iterable, List, Optional

from checkin_portal.store.base import DuplicateRecord, RecordStore, Row, StoreUnavailable

# Single-column and composite uniqueness rules, mirroring the SQL schema
DEFAULT_UNIQUE_KEYS = {
    "students": [("email",)],
    "event_registrations": [("student_id", "event_id")],
}


class MemoryRecordStore(RecordStore):
    name = "memory"

    def __init__(self, unique_keys: Dict[str, Iterable[tuple]] = None):
        self._tables: Dict[str, List[Row]] = {}
        self._unique_keys = DEFAULT_UNIQUE_KEYS if unique_keys is None else unique_keys
        self.available = True
        self.calls: List[tuple] = []

    async def _enter(self, op: str, table: str):
        await asyncio.sleep(0)
        self.calls.append((op, table))
        if not self.available:
            raise StoreUnavailable(f"memory store offline ({op} {table})")

    def _rows(self, table: str) -> List[Row]:
        return self._tables.setdefault(table, [])

    @staticmethod
    def _matches(row: Row, match: Row) -> bool:
        return all(row.get(k) == v for k, v in match.items())

    def _check_unique(self, table: str, candidate: Row, ignore: Optional[Row] = None):
        for key in self._unique_keys.get(table, []):
            values = tuple(candidate.get(col) for col in key)
            if any(v is None for v in values):
                continue
            for existing in self._rows(table):
                if existing is ignore:
                    continue
                if tuple(existing.get(col) for col in key) == values:
                    raise DuplicateRecord(f"{table}: duplicate value for {', '.join(key)}")

    async def find(self, table: str, match: Row) -> List[Row]:
        await self._enter("find", table)
        return [copy.deepcopy(r) for r in self._rows(table) if self._matches(r, match)]

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert", table)
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        if any(r["id"] == stored["id"] for r in self._rows(table)):
            raise DuplicateRecord(f"{table}: duplicate id {stored['id']}")
        self._check_unique(table, stored)
        self._rows(table).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, match: Row, patch: Row,
                     only_if_null: Optional[str] = None) -> List[Row]:
        await self._enter("update", table)
        targets = [r for r in self._rows(table) if self._matches(r, match)]
        if only_if_null:
            targets = [r for r in targets if r.get(only_if_null) is None]
        for row in targets:
            self._check_unique(table, {**row, **patch}, ignore=row)
        for row in targets:
            row.update(copy.deepcopy(patch))
        return [copy.deepcopy(r) for r in targets]

    async def delete(self, table: str, match: Row) -> int:
        await self._enter("delete", table)
        rows = self._rows(table)
        keep = [r for r in rows if not self._matches(r, match)]
        removed = len(rows) - len(keep)
        self._tables[table] = keep
        return removed
