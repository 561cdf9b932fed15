"""
SQLAlchemy record store.

Works against any database SQLAlchemy supports; the portal uses PostgreSQL
in production and SQLite locally. Statements are SQLAlchemy Core on the ORM
models' tables. Blocking calls run in the threadpool via
fastapi.concurrency.run_in_threadpool so the event loop stays free while a
scan waits on the database.

update(only_if_null=...) becomes a single
UPDATE ... WHERE <match> AND <column> IS NULL statement, so the database
decides which of two racing check-ins wins.
"""

import time
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import Table, and_, delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from checkin_portal.database import Base
from checkin_portal.logging_config import get_logger, log_with_context
from checkin_portal.store.base import DuplicateRecord, RecordStore, RecordStoreError, Row, StoreUnavailable

logger = get_logger("store")


class SqlRecordStore(RecordStore):
    name = "sql"

    def __init__(self, engine: Engine):
        # Register the models so their tables are on Base.metadata
        import checkin_portal.models  # noqa: F401

        self.engine = engine

    def _table(self, name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise RecordStoreError(f"Unknown table: {name}") from None

    def _where(self, table: Table, match: Row):
        clauses = []
        for column, value in match.items():
            if column not in table.c:
                raise RecordStoreError(f"Unknown column {table.name}.{column}")
            clauses.append(table.c[column] == value)
        return and_(*clauses) if clauses else None

    async def _run(self, op: str, table_name: str, fn):
        start_time = time.time()
        try:
            result = await run_in_threadpool(fn)
        except IntegrityError as e:
            log_with_context(logger, "WARNING", "Constraint violation on {} {}".format(op, table_name),
                             context={"table": table_name},
                             extra_data={"error": str(e.orig)})
            raise DuplicateRecord(str(e.orig)) from e
        except DBAPIError as e:
            log_with_context(logger, "ERROR", "Database error on {} {}".format(op, table_name),
                             context={"table": table_name},
                             extra_data={"error": str(e)})
            raise StoreUnavailable(str(e)) from e
        except SQLAlchemyError as e:
            raise RecordStoreError(str(e)) from e

        log_with_context(logger, "DEBUG", "{} {}".format(op, table_name),
                         context={"table": table_name},
                         extra_data={"duration_ms": round((time.time() - start_time) * 1000, 2)})
        return result

    async def find(self, table: str, match: Row) -> List[Row]:
        t = self._table(table)
        stmt = select(t)
        where = self._where(t, match)
        if where is not None:
            stmt = stmt.where(where)

        def run():
            with self.engine.connect() as conn:
                return [dict(r._mapping) for r in conn.execute(stmt)]

        return await self._run("find", table, run)

    async def insert(self, table: str, row: Row) -> Row:
        t = self._table(table)

        def run():
            with self.engine.begin() as conn:
                result = conn.execute(insert(t).values(**row))
                pk = dict(zip((c.name for c in t.primary_key.columns), result.inserted_primary_key))
                return dict(conn.execute(select(t).where(self._where(t, pk))).one()._mapping)

        return await self._run("insert", table, run)

    async def update(self, table: str, match: Row, patch: Row,
                     only_if_null: Optional[str] = None) -> List[Row]:
        t = self._table(table)
        where = self._where(t, match)
        if only_if_null:
            if only_if_null not in t.c:
                raise RecordStoreError(f"Unknown column {table}.{only_if_null}")
            guard = t.c[only_if_null].is_(None)
            where = guard if where is None else and_(where, guard)
        pk_cols = list(t.primary_key.columns)

        stmt = update(t).values(**patch)
        if where is not None:
            stmt = stmt.where(where)

        def run():
            with self.engine.begin() as conn:
                if self.engine.dialect.update_returning:
                    return [dict(r._mapping) for r in conn.execute(stmt.returning(*t.c))]
                # No RETURNING: collect the keys first, inside the same transaction
                select_ids = select(*pk_cols)
                if where is not None:
                    select_ids = select_ids.where(where)
                keys = [tuple(r) for r in conn.execute(select_ids)]
                if conn.execute(stmt).rowcount == 0:
                    return []
                changed = []
                for key in keys:
                    pk = dict(zip((c.name for c in pk_cols), key))
                    found = conn.execute(select(t).where(self._where(t, pk))).first()
                    if found is not None:
                        changed.append(dict(found._mapping))
                return changed

        return await self._run("update", table, run)

    async def delete(self, table: str, match: Row) -> int:
        t = self._table(table)
        stmt = delete(t)
        where = self._where(t, match)
        if where is not None:
            stmt = stmt.where(where)

        def run():
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount

        return await self._run("delete", table, run)

    async def close(self):
        await run_in_threadpool(self.engine.dispose)
