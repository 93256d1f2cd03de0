"""SQLite database connection and schema management.

Provides connection management and schema initialization for the
training system's persistence adapters.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/training.db")

# Current database (module-level, set by init_db)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/training.db
    """
    global _db_path
    _db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database_initialized", path=str(_db_path))


def current_db_path() -> Path:
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM users").fetchall()
    """
    db_path = current_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

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

    Uses IF NOT EXISTS for idempotency. Sessions and promotions are
    stored as JSON documents with the columns queries filter on.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            role TEXT NOT NULL CHECK(role IN ('student', 'trainer')),
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            current_levels TEXT NOT NULL DEFAULT '{}',
            promotion_history TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS training_sessions (
            session_id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL,
            trainer_id TEXT,
            curriculum TEXT NOT NULL,
            level TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('active', 'paused', 'completed')),
            start_time TEXT NOT NULL,
            end_time TEXT,
            accuracy REAL NOT NULL DEFAULT 0,
            result TEXT,
            revision INTEGER NOT NULL DEFAULT 0,
            data TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS promotions (
            promotion_id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL,
            curriculum TEXT NOT NULL,
            from_level TEXT NOT NULL,
            to_level TEXT,
            status TEXT NOT NULL CHECK(status IN ('pending', 'approved', 'rejected', 'auto_approved')),
            confidence INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            data TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS adaptive_outcomes (
            student_id TEXT NOT NULL,
            curriculum TEXT NOT NULL,
            exercise_type TEXT NOT NULL,
            attempts INTEGER NOT NULL DEFAULT 0,
            correct INTEGER NOT NULL DEFAULT 0,
            total_time REAL NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (student_id, curriculum, exercise_type)
        );

        CREATE TABLE IF NOT EXISTS adaptive_promotions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL,
            curriculum TEXT NOT NULL,
            from_level TEXT NOT NULL,
            to_level TEXT NOT NULL,
            confidence INTEGER NOT NULL,
            recorded_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_lookup
            ON training_sessions(student_id, curriculum, level, status, end_time);
        CREATE INDEX IF NOT EXISTS idx_sessions_status ON training_sessions(status);
        CREATE INDEX IF NOT EXISTS idx_promotions_status ON promotions(status);
        CREATE INDEX IF NOT EXISTS idx_promotions_student ON promotions(student_id, curriculum);
        """
    )
