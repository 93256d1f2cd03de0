"""Repository for training sessions.

Sessions are stored whole as training_session_v1 JSON, with the columns
used for lookups kept alongside.
"""

from __future__ import annotations

import asyncio
import json

import structlog

from training.core.models import SessionStatus, TrainingSession
from training.db.database import get_db

logger = structlog.get_logger(__name__)


def upsert_session(session: TrainingSession) -> None:
    """Insert or update a session row.

    An existing row is only replaced by a snapshot of the same or a newer
    revision, so a late save can never reopen a completed session.
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO training_sessions (
                session_id, student_id, trainer_id, curriculum, level, status,
                start_time, end_time, accuracy, result, revision, data, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(session_id) DO UPDATE SET
                status = excluded.status,
                end_time = excluded.end_time,
                accuracy = excluded.accuracy,
                result = excluded.result,
                revision = excluded.revision,
                data = excluded.data,
                updated_at = excluded.updated_at
            WHERE excluded.revision >= training_sessions.revision
            """,
            (
                session.session_id,
                session.student_id,
                session.trainer_id,
                session.curriculum.value,
                session.level,
                session.status.value,
                session.start_time.isoformat(),
                session.end_time.isoformat() if session.end_time else None,
                session.accuracy,
                session.result.value if session.result else None,
                session.revision,
                json.dumps(session.to_dict(), ensure_ascii=False),
            ),
        )
    if cursor.rowcount == 0:
        logger.debug(
            "stale_session_save_skipped",
            session_id=session.session_id,
            revision=session.revision,
        )
        return
    logger.debug("session_saved", session_id=session.session_id, status=session.status.value)


def get_session(session_id: str) -> TrainingSession | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT data FROM training_sessions WHERE session_id = ?", (session_id,)
        ).fetchone()
    if row is None:
        return None
    return TrainingSession.from_dict(json.loads(row["data"]))


def list_recent_sessions(
    student_id: str,
    curriculum: str,
    level: str,
    limit: int,
    exclude_id: str | None = None,
) -> list[TrainingSession]:
    """Completed sessions at a curriculum/level, newest first."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT data FROM training_sessions
            WHERE student_id = ? AND curriculum = ? AND level = ?
              AND status = ? AND session_id != ?
            ORDER BY end_time DESC
            LIMIT ?
            """,
            (
                student_id,
                curriculum,
                level,
                SessionStatus.COMPLETED.value,
                exclude_id or "",
                limit,
            ),
        ).fetchall()
    return [TrainingSession.from_dict(json.loads(row["data"])) for row in rows]


def list_open_sessions() -> list[TrainingSession]:
    """Sessions persisted as active or paused."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT data FROM training_sessions WHERE status IN (?, ?) ORDER BY start_time",
            (SessionStatus.ACTIVE.value, SessionStatus.PAUSED.value),
        ).fetchall()
    return [TrainingSession.from_dict(json.loads(row["data"])) for row in rows]


class SqliteSessionStore:
    """Async SessionStore over the training_sessions table."""

    async def save_session(self, session: TrainingSession) -> None:
        await asyncio.to_thread(upsert_session, session)

    async def load_session(self, session_id: str) -> TrainingSession | None:
        return await asyncio.to_thread(get_session, session_id)

    async def recent_sessions(
        self,
        student_id: str,
        curriculum: str,
        level: str,
        limit: int,
        exclude_id: str | None = None,
    ) -> list[TrainingSession]:
        return await asyncio.to_thread(
            list_recent_sessions, student_id, curriculum, level, limit, exclude_id
        )

    async def open_sessions(self) -> list[TrainingSession]:
        return await asyncio.to_thread(list_open_sessions)
