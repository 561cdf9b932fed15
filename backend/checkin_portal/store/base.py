"""
Record store contract.

The portal keeps no durable state of its own. Students, events and
registrations live in a record store reached through this small async
interface, passed explicitly to every service function. Rows are plain
dicts keyed by column name.

Conditional writes: update() accepts only_if_null=<column>, which restricts
the write to rows where that column is currently NULL. The check-in flow
relies on this to make "set the marker once" atomic. A backend that cannot
evaluate the predicate atomically with the write only gives best-effort
at-most-once semantics when two scans of the same token race.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class RecordStoreError(Exception):
    """Base class for record store failures."""


class StoreUnavailable(RecordStoreError):
    """The store could not be reached or failed while serving the call."""


class DuplicateRecord(RecordStoreError):
    """An insert or update violated a uniqueness constraint."""


class RecordStore(ABC):
    """Async key/value-style access to the portal's tables."""

    name = "abstract"

    @abstractmethod
    async def find(self, table: str, match: Row) -> List[Row]:
        """Rows whose columns equal every value in match. Empty match returns all rows."""

    async def find_one(self, table: str, match: Row) -> Optional[Row]:
        """
        The single row matching, or None.

        Raises RecordStoreError if more than one row matches; callers use
        this only on unique keys.
        """
        rows = await self.find(table, match)
        if len(rows) > 1:
            raise RecordStoreError(f"Expected at most one row in {table} for {sorted(match)}, got {len(rows)}")
        return rows[0] if rows else None

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored, including the generated id."""

    @abstractmethod
    async def update(self, table: str, match: Row, patch: Row,
                     only_if_null: Optional[str] = None) -> List[Row]:
        """
        Apply patch to matching rows and return the rows that changed.

        With only_if_null, rows where that column is already set are left
        alone and not returned.
        """

    @abstractmethod
    async def delete(self, table: str, match: Row) -> int:
        """Delete matching rows and return how many were removed."""

    async def close(self):
        """Release connections held by the store."""
