"""Interfaces of the external collaborators the training core calls.

Implementations live in training.db (SQLite), training.core.exercise_bank
and training.core.notifications; tests use in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from training.core.events import SessionEvent
from training.core.models import TrainingSession

if TYPE_CHECKING:
    from training.core.promotion_service import PromotionRecord


@dataclass
class UserRecord:
    """A student or trainer as seen by the training core."""

    user_id: str
    role: str  # student | trainer
    code: str
    name: str
    current_levels: dict[str, str] = field(default_factory=dict)
    promotion_history: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class GeneratedBatch:
    """Exercises plus difficulty metadata returned by a generator."""

    exercises: list[dict[str, Any]]
    settings: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


class ExerciseGenerator(Protocol):
    async def generate(
        self,
        curriculum: str,
        level: str,
        age_group: str,
        session_type: str,
        adaptive_hint: dict[str, Any] | None,
        custom_settings: dict[str, Any],
    ) -> GeneratedBatch: ...


class SessionStore(Protocol):
    async def save_session(self, session: TrainingSession) -> None: ...

    async def load_session(self, session_id: str) -> TrainingSession | None: ...

    async def recent_sessions(
        self,
        student_id: str,
        curriculum: str,
        level: str,
        limit: int,
        exclude_id: str | None = None,
    ) -> list[TrainingSession]:
        """Completed sessions at a curriculum/level, newest first."""
        ...

    async def open_sessions(self) -> list[TrainingSession]:
        """Sessions persisted as active or paused."""
        ...


class PromotionStore(Protocol):
    async def save_promotion(self, record: PromotionRecord) -> None: ...

    async def load_promotion(self, promotion_id: str) -> PromotionRecord | None: ...

    async def list_promotions(
        self,
        status: str | None = None,
        student_id: str | None = None,
        curriculum: str | None = None,
    ) -> list[PromotionRecord]:
        """Promotion records, newest first."""
        ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> UserRecord | None: ...

    async def set_current_level(
        self, student_id: str, curriculum: str, level: str, promotion_id: str
    ) -> str | None:
        """Update the student's level, append history; return the old level."""
        ...


class NotificationChannel(Protocol):
    async def publish(self, event: SessionEvent) -> None: ...


class AdaptiveProfileStore(Protocol):
    async def get_profile(self, student_id: str, curriculum: str) -> dict[str, Any] | None: ...

    async def record_outcome(
        self,
        student_id: str,
        curriculum: str,
        exercise_type: str,
        is_correct: bool,
        time_spent: float,
    ) -> None: ...

    async def record_promotion(
        self, student_id: str, curriculum: str, from_level: str, to_level: str, confidence: int
    ) -> None: ...
