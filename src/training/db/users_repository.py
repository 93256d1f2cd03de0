"""Repository for students and trainers.

Backs the user directory the training core resolves students and
trainers through, including each student's per-curriculum level and
promotion history.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime, timezone

import structlog

from training.core.errors import InvalidConfigError, NotFoundError
from training.core.ports import UserRecord
from training.db.database import get_db

logger = structlog.get_logger(__name__)

ROLES = ("student", "trainer")


def _row_to_user(row: sqlite3.Row) -> UserRecord:
    return UserRecord(
        user_id=row["user_id"],
        role=row["role"],
        code=row["code"],
        name=row["name"],
        current_levels=json.loads(row["current_levels"] or "{}"),
        promotion_history=json.loads(row["promotion_history"] or "[]"),
    )


def insert_user(
    role: str,
    code: str,
    name: str,
    current_levels: dict[str, str] | None = None,
    user_id: str | None = None,
) -> UserRecord:
    """Insert a new student or trainer.

    Raises:
        InvalidConfigError: Unknown role or duplicate code
    """
    if role not in ROLES:
        raise InvalidConfigError(f"Unknown role '{role}', expected one of {list(ROLES)}")
    user = UserRecord(
        user_id=user_id or f"{role[:3]}-{uuid.uuid4().hex[:8]}",
        role=role,
        code=code,
        name=name,
        current_levels=dict(current_levels or {}),
    )
    try:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, role, code, name, current_levels)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user.user_id, role, code, name, json.dumps(user.current_levels)),
            )
    except sqlite3.IntegrityError as e:
        raise InvalidConfigError(f"User with code '{code}' or id '{user.user_id}' exists") from e

    logger.info("user_created", user_id=user.user_id, role=role, code=code)
    return user


def get_user(user_id: str) -> UserRecord | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
    return _row_to_user(row) if row else None


def list_users(role: str | None = None) -> list[UserRecord]:
    with get_db() as conn:
        if role:
            rows = conn.execute(
                "SELECT * FROM users WHERE role = ? ORDER BY code", (role,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM users ORDER BY role, code").fetchall()
    return [_row_to_user(row) for row in rows]


def update_current_level(
    student_id: str, curriculum: str, level: str, promotion_id: str
) -> str | None:
    """Set a student's level and append a promotion history entry.

    Returns:
        The previous level, or None if the student had none

    Raises:
        NotFoundError: Unknown student
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE user_id = ? AND role = 'student'", (student_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError("student", student_id)
        user = _row_to_user(row)
        old_level = user.current_levels.get(curriculum)
        user.current_levels[curriculum] = level
        user.promotion_history.append(
            {
                "promotion_id": promotion_id,
                "curriculum": curriculum,
                "from_level": old_level,
                "to_level": level,
                "promoted_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        conn.execute(
            """
            UPDATE users
            SET current_levels = ?, promotion_history = ?, updated_at = datetime('now')
            WHERE user_id = ?
            """,
            (json.dumps(user.current_levels), json.dumps(user.promotion_history), student_id),
        )

    logger.info(
        "student_level_updated",
        student_id=student_id,
        curriculum=curriculum,
        old_level=old_level,
        new_level=level,
    )
    return old_level


class SqliteUserDirectory:
    """Async UserDirectory over the users table."""

    async def get_user(self, user_id: str) -> UserRecord | None:
        return await asyncio.to_thread(get_user, user_id)

    async def set_current_level(
        self, student_id: str, curriculum: str, level: str, promotion_id: str
    ) -> str | None:
        return await asyncio.to_thread(
            update_current_level, student_id, curriculum, level, promotion_id
        )
