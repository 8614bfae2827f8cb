"""SQLite database connection and schema management.

Provides connection management and schema initialization for the local
plans table.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/unimedia.db")

# Current database (module-level for simplicity in CLI context)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> Path:
    """Initialize database with schema.

    Creates the database file and the plans table if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/unimedia.db

    Returns:
        Path of the initialized database
    """
    global _db_path
    _db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

    with get_db(_db_path) as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))
    return _db_path


@contextmanager
def get_db(db_path: Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Args:
        db_path: Explicit database file; defaults to the initialized one

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            row = conn.execute("SELECT * FROM plans WHERE code = ?", ("70-89",)).fetchone()
    """
    db_path = Path(db_path) if db_path else (_db_path or DEFAULT_DB_PATH)

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- plans: shared study plans, one row per code, never overwritten
        -- code is the PRIMARY KEY: a second insert fails with IntegrityError
        CREATE TABLE IF NOT EXISTS plans (
            code TEXT PRIMARY KEY CHECK(length(code) = 5),
            rows TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        """
    )
