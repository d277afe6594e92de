"""Database connection and session management for the daygrid persistence service.

This module supports both:
- Local SQLite (default for dev)
- PostgreSQL via `DATABASE_URL`
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from dotenv import load_dotenv

load_dotenv()

# Database URL - SQLite by default (local dev)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./daygrid.db")


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # SQLite-specific setting required for FastAPI concurrency in a single process.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# Create engine (module-level singleton)
engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL on SQLite so reads are not blocked by writes."""
    if _is_sqlite_url(DATABASE_URL):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def _sqlite_table_has_column(dbapi_conn, table_name: str, column_name: str) -> bool:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(f"PRAGMA table_info({table_name})")
        cols = [row[1] for row in cursor.fetchall()]  # row[1] is column name
        return column_name in cols
    finally:
        cursor.close()


def ensure_legacy_schema_compat(*, engine_override: Engine = None, database_url_override: str = None) -> None:
    """Ensure legacy SQLite DB files are compatible with the current schema.

    Entries written before slots became a column kept the slot inside the
    description as "[<slot>] <text>". SQLite `create_all()` does not alter
    existing tables, so the column is added in place and backfilled from
    that prefix.
    """
    from daygrid.engine.slot_parser import split_legacy_description

    database_url = database_url_override or DATABASE_URL
    if not _is_sqlite_url(database_url):
        return

    use_engine = engine_override or engine

    dbapi_conn = use_engine.raw_connection()
    try:
        if not _sqlite_table_has_column(dbapi_conn, "timetable_entries", "id"):
            return
        if _sqlite_table_has_column(dbapi_conn, "timetable_entries", "slot"):
            return
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("ALTER TABLE timetable_entries ADD COLUMN slot VARCHAR NOT NULL DEFAULT ''")
            cursor.execute("SELECT id, description FROM timetable_entries")
            for entry_id, description in cursor.fetchall():
                slot, text = split_legacy_description(description or "")
                if slot:
                    cursor.execute(
                        "UPDATE timetable_entries SET slot = ?, description = ? WHERE id = ?",
                        (slot, text, entry_id),
                    )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS ix_timetable_entries_owner_day_slot "
                "ON timetable_entries (owner_id, day, slot)"
            )
            dbapi_conn.commit()
        finally:
            cursor.close()
    finally:
        dbapi_conn.close()


def get_db() -> Session:
    """Get database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database schema (create tables, then patch legacy SQLite files)."""
    from daygrid.database import models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(bind=engine)
    ensure_legacy_schema_compat()
