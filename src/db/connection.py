"""Database connection management for the automation service.

Provides synchronous database access using SQLAlchemy. Supports SQLite for
development with a PostgreSQL migration path for production.

Usage:
    # Sync (for FastAPI Depends)
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

logger = logging.getLogger(__name__)


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. SONA_DB_PATH (converted to sqlite URL)
    3. sqlite file in the platform data directory
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("SONA_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    return _default_sqlite_url()


def _default_sqlite_url() -> str:
    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


# Engine creation
DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False}
    if DATABASE_URL.startswith("sqlite")
    else {},
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers plus a single writer, so parallel
      API requests on different threads do not block each other.
    - synchronous=NORMAL: Commits are durable after WAL fsync.
    """
    if DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()


# Session factories
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Usage:
        @app.get("/threads/{thread_id}/actions")
        def list_actions(db: Session = Depends(get_db)):
            return db.query(ThreadAction).all()

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Context managers for manual session management


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            record = db.query(ThreadAction).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Initialization functions


def _ensure_columns_exist(conn: Any) -> None:
    """Bring an existing SQLite database up to the current schema.

    Adds columns introduced after the first release and de-duplicates
    historic thread_actions rows before enforcing the (user, thread,
    action_key) unique index. Idempotent, safe to call on every startup.

    Args:
        conn: SQLAlchemy Connection.
    """
    from sqlalchemy.exc import OperationalError

    if conn.dialect.name != "sqlite":
        return

    table_exists = conn.execute(
        text(
            "SELECT 1 FROM sqlite_master "
            "WHERE type='table' AND name='thread_actions' LIMIT 1"
        )
    ).fetchone()
    if not table_exists:
        return

    result = conn.execute(text("PRAGMA table_info(thread_actions)"))
    existing = {row[1] for row in result.fetchall()}

    migrations: list[tuple[str, str]] = [
        ("declined_at", "ALTER TABLE thread_actions ADD COLUMN declined_at VARCHAR(50)"),
        (
            "source",
            "ALTER TABLE thread_actions ADD COLUMN source VARCHAR(30) "
            "NOT NULL DEFAULT 'automation'",
        ),
    ]
    for column_name, ddl in migrations:
        if column_name in existing:
            continue
        try:
            conn.execute(text(ddl))
        except OperationalError as e:
            if "duplicate column" not in str(e).lower():
                raise

    # Keep the most decisive row per key, then enforce uniqueness.
    try:
        conn.execute(
            text(
                """
                DELETE FROM thread_actions
                WHERE rowid IN (
                    SELECT rowid FROM (
                        SELECT
                            rowid,
                            ROW_NUMBER() OVER (
                                PARTITION BY user_id, thread_id, action_key
                                ORDER BY
                                    CASE status
                                        WHEN 'applied' THEN 3
                                        WHEN 'declined' THEN 2
                                        WHEN 'failed' THEN 1
                                        ELSE 0
                                    END DESC,
                                    updated_at DESC,
                                    rowid DESC
                            ) AS rn
                        FROM thread_actions
                    ) ranked
                    WHERE rn > 1
                )
                """
            )
        )
        conn.execute(
            text(
                "CREATE UNIQUE INDEX IF NOT EXISTS "
                "uq_thread_actions_user_thread_key "
                "ON thread_actions (user_id, thread_id, action_key)"
            )
        )
    except OperationalError as e:
        logger.warning("thread_actions uniqueness migration skipped: %s", e)


def init_db() -> None:
    """Create all database tables synchronously.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.
    Runs the ledger migration on existing tables.
    """
    if DATABASE_URL == _default_sqlite_url():
        from src.utils.paths import ensure_dirs_exist
        ensure_dirs_exist()
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        _ensure_columns_exist(conn)


# Cleanup functions


def close_db() -> None:
    """Close the sync engine and dispose of connection pool."""
    engine.dispose()
