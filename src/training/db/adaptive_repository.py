"""Adaptive profile storage.

Keeps running per-exercise-type counters for each student and
curriculum. The profile shape is what the exercise bank reads to bias
batches toward weak exercise types:

    {"exercise_types": {"addition": {"attempts": 12, "correct": 9,
                                     "total_time": 41.5}},
     "promotions": [...]}
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from training.db.database import get_db

logger = structlog.get_logger(__name__)


def add_outcome(
    student_id: str, curriculum: str, exercise_type: str, is_correct: bool, time_spent: float
) -> None:
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO adaptive_outcomes (
                student_id, curriculum, exercise_type, attempts, correct, total_time
            ) VALUES (?, ?, ?, 1, ?, ?)
            ON CONFLICT(student_id, curriculum, exercise_type) DO UPDATE SET
                attempts = attempts + 1,
                correct = correct + excluded.correct,
                total_time = total_time + excluded.total_time,
                updated_at = datetime('now')
            """,
            (student_id, curriculum, exercise_type, int(is_correct), float(time_spent)),
        )


def add_promotion(
    student_id: str, curriculum: str, from_level: str, to_level: str, confidence: int
) -> None:
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO adaptive_promotions (
                student_id, curriculum, from_level, to_level, confidence
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (student_id, curriculum, from_level, to_level, confidence),
        )
    logger.debug("adaptive_promotion_recorded", student_id=student_id, curriculum=curriculum)


def load_profile(student_id: str, curriculum: str) -> dict[str, Any] | None:
    """Build the profile, or None if nothing is recorded yet."""
    with get_db() as conn:
        outcomes = conn.execute(
            """
            SELECT exercise_type, attempts, correct, total_time FROM adaptive_outcomes
            WHERE student_id = ? AND curriculum = ?
            """,
            (student_id, curriculum),
        ).fetchall()
        promotions = conn.execute(
            """
            SELECT from_level, to_level, confidence, recorded_at FROM adaptive_promotions
            WHERE student_id = ? AND curriculum = ?
            ORDER BY id
            """,
            (student_id, curriculum),
        ).fetchall()

    if not outcomes and not promotions:
        return None
    return {
        "student_id": student_id,
        "curriculum": curriculum,
        "exercise_types": {
            row["exercise_type"]: {
                "attempts": row["attempts"],
                "correct": row["correct"],
                "total_time": row["total_time"],
            }
            for row in outcomes
        },
        "promotions": [dict(row) for row in promotions],
    }


class SqliteAdaptiveProfileStore:
    """Async AdaptiveProfileStore over the adaptive_* tables."""

    async def get_profile(self, student_id: str, curriculum: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(load_profile, student_id, curriculum)

    async def record_outcome(
        self,
        student_id: str,
        curriculum: str,
        exercise_type: str,
        is_correct: bool,
        time_spent: float,
    ) -> None:
        await asyncio.to_thread(
            add_outcome, student_id, curriculum, exercise_type, is_correct, time_spent
        )

    async def record_promotion(
        self, student_id: str, curriculum: str, from_level: str, to_level: str, confidence: int
    ) -> None:
        await asyncio.to_thread(
            add_promotion, student_id, curriculum, from_level, to_level, confidence
        )
