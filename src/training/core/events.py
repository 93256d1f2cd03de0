"""Lifecycle events published to the notification channel."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from training.core.models import utcnow


class SessionEventType(str, Enum):
    """Named events, student-facing plus trainer-audience mirrors."""

    SESSION_CREATED = "SessionCreated"
    STUDENT_SESSION_STARTED = "StudentSessionStarted"  # trainer
    EXERCISE_VIEWED = "ExerciseViewed"
    ANSWER_SUBMITTED = "AnswerSubmitted"
    STUDENT_PROGRESS = "StudentProgress"  # trainer
    EXERCISE_SKIPPED = "ExerciseSkipped"
    HINT_PROVIDED = "HintProvided"
    SESSION_PAUSED = "SessionPaused"
    STUDENT_SESSION_PAUSED = "StudentSessionPaused"  # trainer
    SESSION_RESUMED = "SessionResumed"
    STUDENT_SESSION_RESUMED = "StudentSessionResumed"  # trainer
    SESSION_COMPLETED = "SessionCompleted"
    STUDENT_SESSION_COMPLETED = "StudentSessionCompleted"  # trainer


def student_audience(student_id: str) -> str:
    return f"student:{student_id}"


def trainer_audience(trainer_id: str) -> str:
    return f"trainer:{trainer_id}"


def generate_event_id() -> str:
    """Generate a unique event ID."""
    return f"evt-{uuid.uuid4().hex[:12]}"


@dataclass
class SessionEvent:
    """One event addressed to a single audience."""

    event_type: SessionEventType
    audience: str
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=generate_event_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "audience": self.audience,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "data": self.data,
        }
