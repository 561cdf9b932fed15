"""
Database engine and session management.

SQLAlchemy backs the `sql` record store. PostgreSQL is the production
target; SQLite is the local development fallback and what the tests use.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

from checkin_portal.logging_config import get_logger, log_with_context

logger = get_logger("db")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./checkin_portal.db"
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def build_engine(database_url: str = DATABASE_URL) -> Engine:
    """
    Create an engine with settings appropriate for the database type.

    PostgreSQL gets a pre-pinged connection pool. SQLite gets
    check_same_thread=False (calls arrive from the threadpool) plus WAL mode
    and foreign key enforcement on every new connection.
    """
    engine_kwargs = {"echo": False}

    if database_url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        })
    elif database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    new_engine = create_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine()


def create_tables(bind: Engine = None):
    """
    Create all tables directly (SQLite local dev and tests).
    For PostgreSQL, run the alembic migrations instead.
    """
    # Register every model on Base.metadata before creating
    import checkin_portal.models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    log_with_context(logger, "INFO", "Tables ensured",
                     extra_data={"tables": sorted(Base.metadata.tables)})
