"""Live training session lifecycle.

Owns the in-memory registry of active/paused sessions and every state
transition on them:

    active -> paused -> active -> completed
    active -> completed (finished, timeout, inactivity, manual)

Concurrency:
- The registry is guarded by one asyncio.Lock; each live session has its
  own lock held only while its state is mutated.
- Persistence, notifications and adaptive updates are queued during the
  mutation and flushed after the session lock is released. A failure is
  logged and never rolls back the transition.
- Completion is idempotent. The first caller finalizes the session;
  concurrent callers await the same summary, later callers get it from
  a bounded cache of recently completed sessions.
"""

from __future__ import annotations

import asyncio
import copy
import functools
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import structlog

from training.config.app_config import AppConfig, load_app_config
from training.core.errors import (
    InvalidConfigError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
)
from training.core.events import (
    SessionEvent,
    SessionEventType,
    student_audience,
    trainer_audience,
)
from training.core.models import (
    Curriculum,
    Exercise,
    SessionSettings,
    SessionStatus,
    TrainingSession,
    utcnow,
)
from training.core.ports import (
    AdaptiveProfileStore,
    ExerciseGenerator,
    NotificationChannel,
    SessionStore,
    UserDirectory,
)
from training.core.promotion_service import PromotionService, outcome_view
from training.core.scorer import analyze_session
from training.core.side_effects import SideEffectQueue, run_isolated
from training.core.timers import SessionTimers
from training.core.validator import validate_answer

logger = structlog.get_logger(__name__)

CUSTOM_SETTING_KEYS = frozenset(
    {"allow_hints", "allow_skip", "auto_save", "show_progress", "duration_minutes", "exercise_count"}
)

REASON_FINISHED = "all_exercises_completed"
REASON_TIMEOUT = "timeout"
REASON_INACTIVE = "inactive"
REASON_MANUAL = "manual"


def generate_session_id() -> str:
    return f"sess-{uuid.uuid4().hex[:12]}"


@dataclass
class CreateSessionConfig:
    """Request to start a training session."""

    student_id: str
    curriculum: str
    level: str | None = None
    trainer_id: str | None = None
    age_group: str = ""
    session_type: str = "practice"
    custom_settings: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Check the config shape.

        Raises:
            InvalidConfigError: On the first problem found
        """
        if not self.student_id or not self.student_id.strip():
            raise InvalidConfigError("student_id is required")
        valid = [c.value for c in Curriculum]
        if self.curriculum not in valid:
            raise InvalidConfigError(
                f"Unknown curriculum '{self.curriculum}', expected one of {valid}"
            )
        if self.level is not None and not self.level.strip():
            raise InvalidConfigError("level must not be blank")
        if not self.session_type:
            raise InvalidConfigError("session_type is required")

        unknown = set(self.custom_settings) - CUSTOM_SETTING_KEYS
        if unknown:
            raise InvalidConfigError(f"Unknown custom settings: {sorted(unknown)}")
        duration = self.custom_settings.get("duration_minutes")
        if duration is not None and (
            isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0
        ):
            raise InvalidConfigError("duration_minutes must be a positive number")
        count = self.custom_settings.get("exercise_count")
        if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count <= 0):
            raise InvalidConfigError("exercise_count must be a positive integer")


@dataclass
class LiveSession:
    """Registry entry: the session plus its lock, timers and completion."""

    session: TrainingSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timers: SessionTimers | None = None
    completion: asyncio.Future | None = None

    def __post_init__(self):
        if self.timers is None:
            self.timers = SessionTimers(self.session.session_id)


class SessionManager:
    """Runs the training session state machine for many concurrent sessions."""

    def __init__(
        self,
        generator: ExerciseGenerator,
        store: SessionStore,
        directory: UserDirectory,
        notifications: NotificationChannel,
        adaptive: AdaptiveProfileStore,
        promotions: PromotionService,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._generator = generator
        self._store = store
        self._directory = directory
        self._notifications = notifications
        self._adaptive = adaptive
        self._promotions = promotions
        self.config = config or load_app_config()
        self._clock = clock
        self._live: dict[str, LiveSession] = {}
        self._registry_lock = asyncio.Lock()
        # session_id -> (summary, final snapshot), oldest first
        self._completed: OrderedDict[str, tuple[dict[str, Any], TrainingSession]] = OrderedDict()

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create(self, config: CreateSessionConfig) -> dict[str, Any]:
        """Start a session and return its id with the first exercise.

        Raises:
            InvalidConfigError: Malformed config or empty exercise batch
            NotFoundError: Unknown student or trainer
        """
        config.validate()

        student = await self._directory.get_user(config.student_id)
        if student is None or student.role != "student":
            raise NotFoundError("student", config.student_id)
        if config.trainer_id:
            trainer = await self._directory.get_user(config.trainer_id)
            if trainer is None or trainer.role != "trainer":
                raise NotFoundError("trainer", config.trainer_id)

        level = config.level or student.current_levels.get(config.curriculum)
        if not level:
            progression = self._promotions.criteria().progression(config.curriculum)
            if not progression:
                raise InvalidConfigError(f"No levels defined for '{config.curriculum}'")
            level = progression[0]

        adaptive_hint = await run_isolated(
            "load_adaptive_profile",
            functools.partial(self._adaptive.get_profile, config.student_id, config.curriculum),
            student_id=config.student_id,
        )
        batch = await self._generator.generate(
            config.curriculum,
            level,
            config.age_group,
            config.session_type,
            adaptive_hint,
            dict(config.custom_settings),
        )
        if not batch.exercises:
            raise InvalidConfigError(f"No exercises available for {config.curriculum}/{level}")

        now = self._clock()
        session = TrainingSession(
            session_id=generate_session_id(),
            student_id=student.user_id,
            trainer_id=config.trainer_id,
            student_code=student.code,
            curriculum=Curriculum(config.curriculum),
            level=level,
            age_group=config.age_group,
            session_type=config.session_type,
            exercises=[Exercise.from_generated(d, i) for i, d in enumerate(batch.exercises)],
            settings=self._build_settings(config, batch.settings),
            metadata=dict(batch.metadata),
            start_time=now,
            last_activity=now,
        )

        entry = LiveSession(session=session)
        async with self._registry_lock:
            self._live[session.session_id] = entry
        self._arm_timers(entry)

        effects = SideEffectQueue()
        self._queue_save(effects, session)
        first = session.current_exercise
        self._queue_event(
            effects,
            session,
            SessionEventType.SESSION_CREATED,
            {
                "curriculum": session.curriculum.value,
                "level": level,
                "total_questions": session.total_questions,
                "time_remaining": session.time_remaining(now),
                "exercise": first.public_view(),
            },
            trainer_event=SessionEventType.STUDENT_SESSION_STARTED,
            trainer_data={
                "student_id": session.student_id,
                "student_code": session.student_code,
                "curriculum": session.curriculum.value,
                "level": level,
                "total_questions": session.total_questions,
            },
        )

        logger.info(
            "session_created",
            session_id=session.session_id,
            student_id=session.student_id,
            trainer_id=session.trainer_id,
            curriculum=session.curriculum.value,
            level=level,
            exercises=session.total_questions,
            duration_seconds=session.settings.duration_seconds,
        )
        await effects.flush()

        return {
            "session_id": session.session_id,
            "status": session.status.value,
            "curriculum": session.curriculum.value,
            "level": level,
            "total_questions": session.total_questions,
            "exercise": first.public_view(),
            "progress": session.progress(),
            "settings": session.settings.to_dict(),
            "time_remaining": session.time_remaining(now),
        }

    def _build_settings(
        self, config: CreateSessionConfig, bank_settings: dict[str, Any]
    ) -> SessionSettings:
        merged = {**bank_settings, **config.custom_settings}
        minutes = merged.get("duration_minutes")
        duration = (
            float(minutes) * 60
            if minutes
            else self.config.lifecycle.duration_for(config.curriculum)
        )
        return SessionSettings(
            allow_hints=bool(merged.get("allow_hints", True)),
            allow_skip=bool(merged.get("allow_skip", True)),
            auto_save=bool(merged.get("auto_save", True)),
            show_progress=bool(merged.get("show_progress", True)),
            duration_seconds=duration,
        )

    # =========================================================================
    # EXERCISE OPERATIONS
    # =========================================================================

    async def get_current_exercise(self, session_id: str) -> dict[str, Any]:
        """Current exercise, or a completed signal once exercises run out."""
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_open(entry)
            now = self._clock()
            session.last_activity = now
            exercise = session.current_exercise
            if exercise is None:
                return {"completed": True, "progress": session.progress()}
            if session.trainer_id:
                effects.add(
                    "notify",
                    functools.partial(
                        self._notifications.publish,
                        SessionEvent(
                            event_type=SessionEventType.EXERCISE_VIEWED,
                            audience=trainer_audience(session.trainer_id),
                            session_id=session_id,
                            data={
                                "student_id": session.student_id,
                                "exercise_id": exercise.exercise_id,
                                "index": session.current_index,
                            },
                        ),
                    ),
                    session_id=session_id,
                )
            result = {
                "completed": False,
                "exercise": exercise.public_view(),
                "progress": session.progress(),
                "time_remaining": session.time_remaining(now),
                "hints_available": len(exercise.hints) if session.settings.allow_hints else 0,
            }
        await effects.flush()
        return result

    async def submit_answer(
        self, session_id: str, answer: Any, time_spent: float
    ) -> dict[str, Any]:
        """Grade the answer to the current exercise and advance.

        Raises:
            NotFoundError: Session not live
            InvalidStateError: Session paused or out of exercises
            PolicyViolationError: time_spent is not a finite number
        """
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_active(entry)
            exercise = self._require_current(session)
            now = self._clock()

            is_correct = validate_answer(exercise, answer)
            exercise.record_answer(answer, is_correct, time_spent, now)
            if is_correct:
                session.correct_answers += 1
            else:
                session.incorrect_answers += 1
            session.current_index += 1
            session.last_activity = now
            session.recompute_metrics()

            progress = session.progress()
            effects.add(
                "adaptive_outcome",
                functools.partial(
                    self._adaptive.record_outcome,
                    session.student_id,
                    session.curriculum.value,
                    exercise.exercise_type,
                    is_correct,
                    exercise.time_spent,
                ),
                session_id=session_id,
            )
            self._queue_event(
                effects,
                session,
                SessionEventType.ANSWER_SUBMITTED,
                {
                    "exercise_id": exercise.exercise_id,
                    "is_correct": is_correct,
                    "accuracy": session.accuracy,
                    "progress": progress,
                },
                trainer_event=SessionEventType.STUDENT_PROGRESS,
                trainer_data={
                    "student_id": session.student_id,
                    "exercise_id": exercise.exercise_id,
                    "is_correct": is_correct,
                    "accuracy": session.accuracy,
                    "progress": progress,
                },
            )
            finished = session.is_exhausted
            if finished:
                self._finalize_locked(entry, REASON_FINISHED)
            else:
                self._queue_save(effects, session)

            result = {
                "session_id": session_id,
                "exercise_id": exercise.exercise_id,
                "is_correct": is_correct,
                "correct_answer": exercise.correct_answer,
                "explanation": exercise.explanation,
                "accuracy": session.accuracy,
                "progress": progress,
                "session_completed": finished,
                "next_exercise": None if finished else session.current_exercise.public_view(),
            }

        logger.debug(
            "answer_submitted",
            session_id=session_id,
            exercise_id=exercise.exercise_id,
            is_correct=is_correct,
            time_spent=exercise.time_spent,
        )
        if finished:
            result["summary"] = await self._after_completion(entry, effects)
        else:
            await effects.flush()
        return result

    async def skip(self, session_id: str, reason: str = "skipped") -> dict[str, Any]:
        """Skip the current exercise.

        Raises:
            PolicyViolationError: Skipping disabled for this session
        """
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_active(entry)
            if not session.settings.allow_skip:
                raise PolicyViolationError("Skipping is not allowed in this session")
            exercise = self._require_current(session)
            now = self._clock()

            exercise.record_skip(reason, now)
            session.skipped_questions += 1
            session.current_index += 1
            session.last_activity = now
            session.recompute_metrics()

            progress = session.progress()
            self._queue_event(
                effects,
                session,
                SessionEventType.EXERCISE_SKIPPED,
                {"exercise_id": exercise.exercise_id, "reason": reason, "progress": progress},
                trainer_event=SessionEventType.STUDENT_PROGRESS,
                trainer_data={
                    "student_id": session.student_id,
                    "exercise_id": exercise.exercise_id,
                    "skipped": True,
                    "progress": progress,
                },
            )
            finished = session.is_exhausted
            if finished:
                self._finalize_locked(entry, REASON_FINISHED)
            else:
                self._queue_save(effects, session)

            result = {
                "session_id": session_id,
                "exercise_id": exercise.exercise_id,
                "skipped": True,
                "progress": progress,
                "session_completed": finished,
                "next_exercise": None if finished else session.current_exercise.public_view(),
            }

        logger.debug("exercise_skipped", session_id=session_id, exercise_id=exercise.exercise_id)
        if finished:
            result["summary"] = await self._after_completion(entry, effects)
        else:
            await effects.flush()
        return result

    async def request_hint(self, session_id: str, hint_index: int) -> dict[str, Any]:
        """Reveal one hint of the current exercise.

        Raises:
            PolicyViolationError: Hints disabled, none defined, or index out of range
        """
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_active(entry)
            if not session.settings.allow_hints:
                raise PolicyViolationError("Hints are not allowed in this session")
            exercise = self._require_current(session)
            if not exercise.hints:
                raise PolicyViolationError(
                    f"Exercise '{exercise.exercise_id}' has no hints"
                )
            if hint_index < 0 or hint_index >= len(exercise.hints):
                raise PolicyViolationError(
                    f"Hint index {hint_index} out of range (0-{len(exercise.hints) - 1})"
                )
            now = self._clock()
            exercise.record_hint(hint_index, now)
            session.last_activity = now

            result = {
                "exercise_id": exercise.exercise_id,
                "hint": exercise.hints[hint_index],
                "hint_index": hint_index,
                "hints_used": exercise.hints_used,
                "has_more_hints": hint_index < len(exercise.hints) - 1,
            }
            self._queue_event(
                effects,
                session,
                SessionEventType.HINT_PROVIDED,
                {"exercise_id": exercise.exercise_id, "hint_index": hint_index},
            )
            self._queue_save(effects, session)

        logger.debug("hint_provided", session_id=session_id, hint_index=hint_index)
        await effects.flush()
        return result

    # =========================================================================
    # PAUSE / RESUME
    # =========================================================================

    async def pause(self, session_id: str, reason: str = "user_request") -> dict[str, Any]:
        """Pause an active session and stop its timers."""
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_open(entry)
            if session.status == SessionStatus.PAUSED:
                raise InvalidStateError(f"Session '{session_id}' is already paused")
            now = self._clock()
            session.status = SessionStatus.PAUSED
            session.paused_at = now
            session.pause_reason = reason
            session.last_activity = now
            entry.timers.cancel()

            remaining = session.time_remaining(now)
            self._queue_event(
                effects,
                session,
                SessionEventType.SESSION_PAUSED,
                {"reason": reason, "time_remaining": remaining},
                trainer_event=SessionEventType.STUDENT_SESSION_PAUSED,
                trainer_data={"student_id": session.student_id, "reason": reason},
            )
            self._queue_save(effects, session)

        logger.info("session_paused", session_id=session_id, reason=reason)
        await effects.flush()
        return {
            "session_id": session_id,
            "status": SessionStatus.PAUSED.value,
            "paused_at": now.isoformat(),
            "time_remaining": remaining,
        }

    async def resume(self, session_id: str) -> dict[str, Any]:
        """Resume a paused session, re-arming timers for the remaining time."""
        entry = await self._get_live(session_id)
        effects = SideEffectQueue()
        async with entry.lock:
            session = self._check_open(entry)
            if session.status != SessionStatus.PAUSED:
                raise InvalidStateError(f"Session '{session_id}' is not paused")
            now = self._clock()
            paused_for = (now - session.paused_at).total_seconds() if session.paused_at else 0.0
            session.total_pause_seconds += max(paused_for, 0.0)
            session.paused_at = None
            session.pause_reason = None
            session.resumed_at = now
            session.status = SessionStatus.ACTIVE
            session.last_activity = now
            self._arm_timers(entry)

            remaining = session.time_remaining(now)
            current = session.current_exercise
            self._queue_event(
                effects,
                session,
                SessionEventType.SESSION_RESUMED,
                {"time_remaining": remaining, "paused_seconds": paused_for},
                trainer_event=SessionEventType.STUDENT_SESSION_RESUMED,
                trainer_data={"student_id": session.student_id},
            )
            self._queue_save(effects, session)

        logger.info(
            "session_resumed",
            session_id=session_id,
            paused_seconds=round(paused_for, 1),
            time_remaining=round(remaining, 1),
        )
        await effects.flush()
        return {
            "session_id": session_id,
            "status": SessionStatus.ACTIVE.value,
            "time_remaining": remaining,
            "total_pause_seconds": session.total_pause_seconds,
            "exercise": current.public_view() if current else None,
        }

    # =========================================================================
    # COMPLETION
    # =========================================================================

    async def complete(self, session_id: str, reason: str = REASON_MANUAL) -> dict[str, Any]:
        """Finish a session. Safe to call repeatedly.

        Returns:
            Completion summary (statistics, assessment, promotion outcome)
        """
        async with self._registry_lock:
            entry = self._live.get(session_id)
            if entry is None:
                cached = self._completed.get(session_id)
                if cached is not None:
                    return cached[0]
                raise NotFoundError("session", session_id)
        return await self._complete_entry(entry, reason)

    async def cleanup_inactive(self, threshold_seconds: float | None = None) -> int:
        """Force-complete sessions idle for longer than the threshold.

        Returns:
            Number of sessions completed by this sweep
        """
        if threshold_seconds is None:
            threshold_seconds = self.config.lifecycle.inactive_threshold_seconds
        now = self._clock()
        async with self._registry_lock:
            idle = [
                entry
                for entry in self._live.values()
                if (now - (entry.session.last_activity or entry.session.start_time)).total_seconds()
                > threshold_seconds
            ]

        cleaned = 0
        for entry in idle:
            summary = await self._complete_entry(entry, REASON_INACTIVE, forced=True)
            if summary is not None:
                cleaned += 1
        if cleaned:
            logger.info("inactive_sessions_cleaned", count=cleaned, threshold=threshold_seconds)
        return cleaned

    async def _complete_entry(
        self,
        entry: LiveSession,
        reason: str,
        forced: bool = False,
        require_active: bool = False,
    ) -> dict[str, Any] | None:
        """Finalize once; concurrent callers share the same summary.

        Forced completions (timers, sweeps) return None instead of waiting
        when the session is already completing or no longer qualifies.
        """
        async with entry.lock:
            waiter = entry.completion
            if waiter is None:
                if require_active and entry.session.status != SessionStatus.ACTIVE:
                    return None
                self._finalize_locked(entry, reason)

        if waiter is not None:
            if forced:
                return None
            return await asyncio.shield(waiter)
        return await self._after_completion(entry, SideEffectQueue())

    def _finalize_locked(self, entry: LiveSession, reason: str) -> None:
        """Terminal transition. Caller holds entry.lock."""
        session = entry.session
        now = self._clock()
        if session.status == SessionStatus.PAUSED and session.paused_at is not None:
            session.total_pause_seconds += max((now - session.paused_at).total_seconds(), 0.0)
            session.paused_at = None
        session.status = SessionStatus.COMPLETED
        session.end_time = now
        session.completion_reason = reason
        session.recompute_metrics()
        session.revision += 1
        session.result = session.classify_result()
        session.actual_duration = max(
            (now - session.start_time).total_seconds() - session.total_pause_seconds, 0.0
        )
        entry.timers.cancel()
        entry.completion = asyncio.get_running_loop().create_future()

    async def _after_completion(
        self, entry: LiveSession, effects: SideEffectQueue
    ) -> dict[str, Any]:
        try:
            summary = await self._summarize_completion(entry.session, effects)
        except Exception as e:
            entry.completion.set_exception(e)
            raise
        except BaseException:
            entry.completion.cancel()
            raise
        entry.completion.set_result(summary)
        return summary

    async def _summarize_completion(
        self, session: TrainingSession, effects: SideEffectQueue
    ) -> dict[str, Any]:
        session_id = session.session_id
        async with self._registry_lock:
            self._live.pop(session_id, None)
        snapshot = copy.deepcopy(session)

        # Persist the terminal state before anything reads history
        await run_isolated(
            "save_session",
            functools.partial(self._store.save_session, snapshot),
            session_id=session_id,
        )

        history = await run_isolated(
            "load_history",
            functools.partial(
                self._store.recent_sessions,
                snapshot.student_id,
                snapshot.curriculum.value,
                snapshot.level,
                self.config.promotion.history_window,
                exclude_id=session_id,
            ),
            default=[],
            session_id=session_id,
        )
        assessment = analyze_session(
            snapshot,
            history,
            self.config.assessment,
            history_window=self.config.promotion.history_window,
        )

        decision = await run_isolated(
            "evaluate_promotion",
            functools.partial(
                self._promotions.evaluate,
                snapshot.student_id,
                snapshot.curriculum.value,
                snapshot.level,
                current=snapshot,
            ),
            session_id=session_id,
        )
        record = None
        if decision is not None and decision.eligible:
            record = await run_isolated(
                "record_promotion",
                functools.partial(self._promotions.process_decision, decision),
                session_id=session_id,
            )
        promotion = outcome_view(decision, record)

        summary = {
            "session_id": session_id,
            "student_id": snapshot.student_id,
            "status": SessionStatus.COMPLETED.value,
            "result": snapshot.result.value,
            "completion_reason": snapshot.completion_reason,
            "accuracy": snapshot.accuracy,
            "completion_rate": snapshot.completion_rate,
            "average_time_per_question": snapshot.average_time_per_question,
            "statistics": snapshot.statistics(),
            "assessment": assessment.to_dict(),
            "promotion": promotion,
        }
        self._remember_completed(summary, snapshot)

        event_data = {k: v for k, v in summary.items() if k != "assessment"}
        event_data["grade"] = assessment.performance.grade
        self._queue_event(
            effects,
            snapshot,
            SessionEventType.SESSION_COMPLETED,
            event_data,
            trainer_event=SessionEventType.STUDENT_SESSION_COMPLETED,
            trainer_data=event_data,
        )

        logger.info(
            "session_completed",
            session_id=session_id,
            reason=snapshot.completion_reason,
            result=summary["result"],
            accuracy=round(snapshot.accuracy, 1),
            completion_rate=round(snapshot.completion_rate, 1),
            promotion_status=promotion["status"] if promotion else None,
        )
        await effects.flush()
        return summary

    def _remember_completed(self, summary: dict[str, Any], snapshot: TrainingSession) -> None:
        self._completed[snapshot.session_id] = (summary, snapshot)
        self._completed.move_to_end(snapshot.session_id)
        while len(self._completed) > self.config.lifecycle.completed_cache_size:
            self._completed.popitem(last=False)

    # =========================================================================
    # STATUS & MAINTENANCE
    # =========================================================================

    async def get_status(self, session_id: str) -> dict[str, Any]:
        """Live status, falling back to the persisted session."""
        async with self._registry_lock:
            entry = self._live.get(session_id)
            cached = self._completed.get(session_id)
        if entry is not None:
            async with entry.lock:
                return self._status_view(entry.session, live=True)
        if cached is not None:
            return self._status_view(cached[1], live=False)
        stored = await self._store.load_session(session_id)
        if stored is None:
            raise NotFoundError("session", session_id)
        return self._status_view(stored, live=False)

    async def list_active(self) -> list[dict[str, Any]]:
        async with self._registry_lock:
            entries = list(self._live.values())
        now = self._clock()
        return [
            {
                "session_id": e.session.session_id,
                "student_id": e.session.student_id,
                "trainer_id": e.session.trainer_id,
                "curriculum": e.session.curriculum.value,
                "level": e.session.level,
                "status": e.session.status.value,
                "progress": e.session.progress(),
                "accuracy": e.session.accuracy,
                "time_remaining": e.session.time_remaining(now),
                "last_activity": e.session.last_activity.isoformat()
                if e.session.last_activity
                else None,
            }
            for e in entries
        ]

    async def heartbeat(self, session_id: str) -> dict[str, Any]:
        """Mark the session as recently active."""
        entry = await self._get_live(session_id)
        async with entry.lock:
            session = self._check_open(entry)
            now = self._clock()
            session.last_activity = now
            return {
                "session_id": session_id,
                "status": session.status.value,
                "last_activity": now.isoformat(),
                "time_remaining": session.time_remaining(now),
            }

    async def add_trainer_notes(self, session_id: str, notes: str) -> dict[str, Any]:
        """Annotate a session; allowed on completed sessions too."""
        async with self._registry_lock:
            entry = self._live.get(session_id)
            cached = self._completed.get(session_id)

        if entry is not None and entry.completion is None:
            effects = SideEffectQueue()
            async with entry.lock:
                entry.session.trainer_notes = notes
                self._queue_save(effects, entry.session)
                view = self._status_view(entry.session, live=True)
            await effects.flush()
            logger.info("trainer_notes_added", session_id=session_id, live=True)
            return view

        session = await self._store.load_session(session_id)
        if session is None and cached is not None:
            session = copy.deepcopy(cached[1])
        if session is None:
            raise NotFoundError("session", session_id)
        session.trainer_notes = notes
        session.revision += 1
        await self._store.save_session(session)
        if cached is not None:
            cached[1].trainer_notes = notes
            cached[1].revision = session.revision
        logger.info("trainer_notes_added", session_id=session_id, live=False)
        return self._status_view(session, live=False)

    async def restore(self) -> int:
        """Reload persisted active/paused sessions into the live registry.

        Returns:
            Number of sessions restored
        """
        try:
            sessions = await self._store.open_sessions()
        except Exception as e:
            logger.error("session_restore_failed", error=str(e))
            return 0

        restored = 0
        for session in sessions:
            if session.status == SessionStatus.COMPLETED:
                continue
            entry = LiveSession(session=session)
            async with self._registry_lock:
                if session.session_id in self._live:
                    continue
                self._live[session.session_id] = entry
            if session.status == SessionStatus.ACTIVE:
                self._arm_timers(entry)
            restored += 1

        logger.info("sessions_restored", count=restored)
        return restored

    async def shutdown(self) -> None:
        """Cancel every timer and persist live sessions for a later restore."""
        async with self._registry_lock:
            entries = list(self._live.values())
        for entry in entries:
            entry.timers.cancel()
            snapshot = copy.deepcopy(entry.session)
            await run_isolated(
                "save_session",
                functools.partial(self._store.save_session, snapshot),
                session_id=snapshot.session_id,
            )
        logger.info("session_manager_shutdown", live_sessions=len(entries))

    def is_live(self, session_id: str) -> bool:
        return session_id in self._live

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _get_live(self, session_id: str) -> LiveSession:
        async with self._registry_lock:
            entry = self._live.get(session_id)
        if entry is None:
            raise NotFoundError("session", session_id)
        return entry

    @staticmethod
    def _check_open(entry: LiveSession) -> TrainingSession:
        if entry.completion is not None or entry.session.status == SessionStatus.COMPLETED:
            raise InvalidStateError(f"Session '{entry.session.session_id}' is completed")
        return entry.session

    def _check_active(self, entry: LiveSession) -> TrainingSession:
        session = self._check_open(entry)
        if session.status == SessionStatus.PAUSED:
            raise InvalidStateError(f"Session '{session.session_id}' is paused")
        return session

    @staticmethod
    def _require_current(session: TrainingSession) -> Exercise:
        exercise = session.current_exercise
        if exercise is None:
            raise InvalidStateError(f"Session '{session.session_id}' has no remaining exercises")
        return exercise

    def _arm_timers(self, entry: LiveSession) -> None:
        session = entry.session
        interval = (
            self.config.lifecycle.auto_save_interval_seconds if session.settings.auto_save else None
        )
        entry.timers.arm(
            interval,
            functools.partial(self._auto_save, session.session_id),
            session.time_remaining(self._clock()),
            functools.partial(self._on_timeout, session.session_id),
        )

    async def _auto_save(self, session_id: str) -> None:
        async with self._registry_lock:
            entry = self._live.get(session_id)
        if entry is None:
            return
        async with entry.lock:
            if entry.completion is not None:
                return
            snapshot = copy.deepcopy(entry.session)
        await self._store.save_session(snapshot)
        logger.debug("session_auto_saved", session_id=session_id)

    async def _on_timeout(self, session_id: str) -> None:
        async with self._registry_lock:
            entry = self._live.get(session_id)
        if entry is None:
            logger.warning("stale_timer_fired", session_id=session_id)
            return
        summary = await self._complete_entry(
            entry, REASON_TIMEOUT, forced=True, require_active=True
        )
        if summary is None:
            logger.warning("stale_timer_fired", session_id=session_id)

    def _queue_save(self, effects: SideEffectQueue, session: TrainingSession) -> None:
        """Queue a save of the current state. Caller holds the session lock."""
        session.revision += 1
        snapshot = copy.deepcopy(session)
        effects.add(
            "save_session",
            functools.partial(self._store.save_session, snapshot),
            session_id=session.session_id,
        )

    def _queue_event(
        self,
        effects: SideEffectQueue,
        session: TrainingSession,
        event_type: SessionEventType,
        data: dict[str, Any],
        trainer_event: SessionEventType | None = None,
        trainer_data: dict[str, Any] | None = None,
    ) -> None:
        effects.add(
            "notify",
            functools.partial(
                self._notifications.publish,
                SessionEvent(
                    event_type=event_type,
                    audience=student_audience(session.student_id),
                    session_id=session.session_id,
                    data=data,
                ),
            ),
            session_id=session.session_id,
            event_type=event_type.value,
        )
        if trainer_event is not None and session.trainer_id:
            effects.add(
                "notify",
                functools.partial(
                    self._notifications.publish,
                    SessionEvent(
                        event_type=trainer_event,
                        audience=trainer_audience(session.trainer_id),
                        session_id=session.session_id,
                        data=trainer_data if trainer_data is not None else data,
                    ),
                ),
                session_id=session.session_id,
                event_type=trainer_event.value,
            )

    def _status_view(self, session: TrainingSession, live: bool) -> dict[str, Any]:
        return {
            "session_id": session.session_id,
            "student_id": session.student_id,
            "trainer_id": session.trainer_id,
            "curriculum": session.curriculum.value,
            "level": session.level,
            "status": session.status.value,
            "live": live,
            "progress": session.progress(),
            "statistics": session.statistics(),
            "time_remaining": session.time_remaining(self._clock()),
            "start_time": session.start_time.isoformat(),
            "end_time": session.end_time.isoformat() if session.end_time else None,
            "last_activity": session.last_activity.isoformat() if session.last_activity else None,
            "settings": session.settings.to_dict(),
            "result": session.result.value if session.result else None,
            "completion_reason": session.completion_reason,
            "trainer_notes": session.trainer_notes,
        }
