"""Training session data model.

Responsibilities:
- Exercise and TrainingSession records with their invariants
- Running metrics (accuracy, average time, completion rate), always
  recomputed from counters and exercise history
- Result classification and remaining-time arithmetic
- JSON-friendly serialization (training_session_v1 schema)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from training.core.errors import InvalidStateError, PolicyViolationError

SESSION_SCHEMA = "training_session_v1"

# =============================================================================
# ENUMS
# =============================================================================


class Curriculum(str, Enum):
    """Training tracks, each with its own level progression."""

    ABACUS = "abacus"
    VEDIC = "vedic"
    LOGIC = "logic"
    IQ_GAMES = "iq_games"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class SessionResult(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    SATISFACTORY = "satisfactory"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


class AnswerType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    NUMERIC = "numeric"
    TEXT = "text"
    EXACT = "exact"


# (min accuracy, min completion rate, result), first match wins
RESULT_BANDS: tuple[tuple[float, float, SessionResult], ...] = (
    (90, 90, SessionResult.EXCELLENT),
    (80, 80, SessionResult.GOOD),
    (70, 70, SessionResult.SATISFACTORY),
    (60, 60, SessionResult.NEEDS_IMPROVEMENT),
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# =============================================================================
# EXERCISE
# =============================================================================


@dataclass
class HintUsage:
    """One entry of an exercise's hint usage log."""

    hint_index: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"hint_index": self.hint_index, "timestamp": self.timestamp.isoformat()}


@dataclass
class Exercise:
    """A single exercise inside a training session.

    Once answered or skipped the record is frozen: further answer/skip
    attempts raise InvalidStateError.
    """

    exercise_id: str
    question: str
    correct_answer: str
    answer_type: AnswerType = AnswerType.EXACT
    exercise_type: str = "general"
    difficulty: str = "medium"
    hints: list[str] = field(default_factory=list)
    time_limit: float | None = None
    explanation: str = ""
    options: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    # Student interaction
    student_answer: str | None = None
    is_correct: bool | None = None
    is_answered: bool = False
    is_skipped: bool = False
    skip_reason: str | None = None
    time_spent: float = 0.0
    attempts: int = 0
    hints_used: int = 0
    last_hint_used: int | None = None
    hint_usage_log: list[HintUsage] = field(default_factory=list)
    answered_at: datetime | None = None
    skipped_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        """True once the exercise has been answered or skipped."""
        return self.is_answered or self.is_skipped

    def record_answer(
        self, answer: Any, is_correct: bool, time_spent: float, at: datetime
    ) -> None:
        """Write the outcome of a submission onto this exercise."""
        if self.is_closed:
            raise InvalidStateError(f"Exercise '{self.exercise_id}' is already closed")
        spent = float(time_spent)
        if not math.isfinite(spent):
            raise PolicyViolationError(f"time_spent must be a finite number, got {time_spent!r}")
        self.student_answer = None if answer is None else str(answer)
        self.is_correct = is_correct
        self.is_answered = True
        self.time_spent = max(spent, 0.0)
        self.attempts += 1
        self.answered_at = at

    def record_skip(self, reason: str, at: datetime) -> None:
        if self.is_closed:
            raise InvalidStateError(f"Exercise '{self.exercise_id}' is already closed")
        self.is_skipped = True
        self.skip_reason = reason
        self.skipped_at = at

    def record_hint(self, hint_index: int, at: datetime) -> None:
        self.hints_used += 1
        self.last_hint_used = hint_index
        self.hint_usage_log.append(HintUsage(hint_index=hint_index, timestamp=at))

    def public_view(self) -> dict[str, Any]:
        """Exercise payload safe to send to a student (no expected answer)."""
        return {
            "exercise_id": self.exercise_id,
            "question": self.question,
            "answer_type": self.answer_type.value,
            "exercise_type": self.exercise_type,
            "difficulty": self.difficulty,
            "options": list(self.options),
            "hint_count": len(self.hints),
            "time_limit": self.time_limit,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_generated(cls, data: dict[str, Any], index: int) -> Exercise:
        """Build a fresh exercise from a generator payload."""
        return cls(
            exercise_id=str(data.get("exercise_id") or f"ex{index + 1:03d}"),
            question=str(data["question"]),
            correct_answer=str(data["correct_answer"]),
            answer_type=AnswerType(data.get("answer_type", AnswerType.EXACT.value)),
            exercise_type=data.get("exercise_type", "general"),
            difficulty=data.get("difficulty", "medium"),
            hints=list(data.get("hints") or []),
            time_limit=data.get("time_limit"),
            explanation=data.get("explanation", ""),
            options=[str(o) for o in data.get("options") or []],
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "exercise_id": self.exercise_id,
            "question": self.question,
            "correct_answer": self.correct_answer,
            "answer_type": self.answer_type.value,
            "exercise_type": self.exercise_type,
            "difficulty": self.difficulty,
            "hints": list(self.hints),
            "time_limit": self.time_limit,
            "explanation": self.explanation,
            "options": list(self.options),
            "metadata": dict(self.metadata),
            "student_answer": self.student_answer,
            "is_correct": self.is_correct,
            "is_answered": self.is_answered,
            "is_skipped": self.is_skipped,
            "skip_reason": self.skip_reason,
            "time_spent": self.time_spent,
            "attempts": self.attempts,
            "hints_used": self.hints_used,
            "last_hint_used": self.last_hint_used,
            "hint_usage_log": [h.to_dict() for h in self.hint_usage_log],
            "answered_at": _iso(self.answered_at),
            "skipped_at": _iso(self.skipped_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Exercise:
        exercise = cls.from_generated(data, 0)
        exercise.student_answer = data.get("student_answer")
        exercise.is_correct = data.get("is_correct")
        exercise.is_answered = bool(data.get("is_answered", False))
        exercise.is_skipped = bool(data.get("is_skipped", False))
        exercise.skip_reason = data.get("skip_reason")
        exercise.time_spent = float(data.get("time_spent", 0.0))
        exercise.attempts = int(data.get("attempts", 0))
        exercise.hints_used = int(data.get("hints_used", 0))
        exercise.last_hint_used = data.get("last_hint_used")
        exercise.hint_usage_log = [
            HintUsage(hint_index=h["hint_index"], timestamp=_parse_dt(h["timestamp"]))
            for h in data.get("hint_usage_log", [])
        ]
        exercise.answered_at = _parse_dt(data.get("answered_at"))
        exercise.skipped_at = _parse_dt(data.get("skipped_at"))
        return exercise


# =============================================================================
# SESSION
# =============================================================================


@dataclass
class SessionSettings:
    """Per-session behaviour switches."""

    allow_hints: bool = True
    allow_skip: bool = True
    auto_save: bool = True
    show_progress: bool = True
    duration_seconds: float = 1800.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "allow_hints": self.allow_hints,
            "allow_skip": self.allow_skip,
            "auto_save": self.auto_save,
            "show_progress": self.show_progress,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSettings:
        return cls(
            allow_hints=data.get("allow_hints", True),
            allow_skip=data.get("allow_skip", True),
            auto_save=data.get("auto_save", True),
            show_progress=data.get("show_progress", True),
            duration_seconds=float(data.get("duration_seconds", 1800.0)),
        )


@dataclass
class TrainingSession:
    """One training attempt, live or historical."""

    session_id: str
    student_id: str
    curriculum: Curriculum
    level: str
    exercises: list[Exercise]
    trainer_id: str | None = None
    student_code: str = ""
    age_group: str = ""
    session_type: str = "practice"
    status: SessionStatus = SessionStatus.ACTIVE
    current_index: int = 0
    start_time: datetime = field(default_factory=utcnow)
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    pause_reason: str | None = None
    total_pause_seconds: float = 0.0
    end_time: datetime | None = None
    correct_answers: int = 0
    incorrect_answers: int = 0
    skipped_questions: int = 0
    accuracy: float = 0.0
    average_time_per_question: float = 0.0
    completion_rate: float = 0.0
    settings: SessionSettings = field(default_factory=SessionSettings)
    result: SessionResult | None = None
    completion_reason: str | None = None
    actual_duration: float | None = None
    trainer_notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    last_activity: datetime | None = None
    # Bumped under the session lock on every persisted change; stores drop
    # snapshots older than what they hold
    revision: int = 0

    @property
    def total_questions(self) -> int:
        return len(self.exercises)

    @property
    def answered_count(self) -> int:
        return self.correct_answers + self.incorrect_answers

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.exercises)

    @property
    def current_exercise(self) -> Exercise | None:
        if self.is_exhausted:
            return None
        return self.exercises[self.current_index]

    def recompute_metrics(self) -> None:
        """Derive accuracy, average time and completion rate from counters.

        Average time is the sum of time_spent over answered exercises divided
        by the answered count; skipped exercises never contribute.
        """
        answered = self.answered_count
        self.accuracy = (self.correct_answers / answered) * 100 if answered else 0.0
        total_time = sum(ex.time_spent for ex in self.exercises if ex.is_answered)
        self.average_time_per_question = total_time / answered if answered else 0.0
        total = self.total_questions
        self.completion_rate = (answered / total) * 100 if total else 0.0

    def classify_result(self) -> SessionResult:
        for min_accuracy, min_completion, result in RESULT_BANDS:
            if self.accuracy >= min_accuracy and self.completion_rate >= min_completion:
                return result
        return SessionResult.POOR

    def progress(self) -> dict[str, Any]:
        total = self.total_questions
        return {
            "current": self.current_index,
            "total": total,
            "percentage": round((self.current_index / total) * 100) if total else 100,
        }

    def time_remaining(self, now: datetime) -> float:
        """Seconds left in the duration budget.

        A paused session is frozen at its pause instant; a completed one
        at its end time.
        """
        if self.status == SessionStatus.PAUSED and self.paused_at is not None:
            reference = self.paused_at
        elif self.status == SessionStatus.COMPLETED and self.end_time is not None:
            reference = self.end_time
        else:
            reference = now
        elapsed = (reference - self.start_time).total_seconds() - self.total_pause_seconds
        return max(0.0, self.settings.duration_seconds - elapsed)

    def statistics(self) -> dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "completion_rate": self.completion_rate,
            "average_time": self.average_time_per_question,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "incorrect_answers": self.incorrect_answers,
            "skipped_questions": self.skipped_questions,
            "actual_duration": self.actual_duration,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": SESSION_SCHEMA,
            "session_id": self.session_id,
            "student_id": self.student_id,
            "trainer_id": self.trainer_id,
            "student_code": self.student_code,
            "curriculum": self.curriculum.value,
            "level": self.level,
            "age_group": self.age_group,
            "session_type": self.session_type,
            "status": self.status.value,
            "current_index": self.current_index,
            "start_time": _iso(self.start_time),
            "paused_at": _iso(self.paused_at),
            "resumed_at": _iso(self.resumed_at),
            "pause_reason": self.pause_reason,
            "total_pause_seconds": self.total_pause_seconds,
            "end_time": _iso(self.end_time),
            "correct_answers": self.correct_answers,
            "incorrect_answers": self.incorrect_answers,
            "skipped_questions": self.skipped_questions,
            "accuracy": self.accuracy,
            "average_time_per_question": self.average_time_per_question,
            "completion_rate": self.completion_rate,
            "settings": self.settings.to_dict(),
            "result": self.result.value if self.result else None,
            "completion_reason": self.completion_reason,
            "actual_duration": self.actual_duration,
            "trainer_notes": self.trainer_notes,
            "metadata": dict(self.metadata),
            "last_activity": _iso(self.last_activity),
            "revision": self.revision,
            "exercises": [ex.to_dict() for ex in self.exercises],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrainingSession:
        result = data.get("result")
        return cls(
            session_id=data["session_id"],
            student_id=data["student_id"],
            trainer_id=data.get("trainer_id"),
            student_code=data.get("student_code", ""),
            curriculum=Curriculum(data["curriculum"]),
            level=data["level"],
            age_group=data.get("age_group", ""),
            session_type=data.get("session_type", "practice"),
            status=SessionStatus(data.get("status", "active")),
            current_index=int(data.get("current_index", 0)),
            start_time=_parse_dt(data.get("start_time")) or utcnow(),
            paused_at=_parse_dt(data.get("paused_at")),
            resumed_at=_parse_dt(data.get("resumed_at")),
            pause_reason=data.get("pause_reason"),
            total_pause_seconds=float(data.get("total_pause_seconds", 0.0)),
            end_time=_parse_dt(data.get("end_time")),
            correct_answers=int(data.get("correct_answers", 0)),
            incorrect_answers=int(data.get("incorrect_answers", 0)),
            skipped_questions=int(data.get("skipped_questions", 0)),
            accuracy=float(data.get("accuracy", 0.0)),
            average_time_per_question=float(data.get("average_time_per_question", 0.0)),
            completion_rate=float(data.get("completion_rate", 0.0)),
            settings=SessionSettings.from_dict(data.get("settings", {})),
            result=SessionResult(result) if result else None,
            completion_reason=data.get("completion_reason"),
            actual_duration=data.get("actual_duration"),
            trainer_notes=data.get("trainer_notes"),
            metadata=dict(data.get("metadata") or {}),
            last_activity=_parse_dt(data.get("last_activity")),
            revision=int(data.get("revision", 0)),
            exercises=[Exercise.from_dict(ex) for ex in data.get("exercises", [])],
        )
