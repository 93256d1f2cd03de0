"""Tests for the live session lifecycle."""

import asyncio
from datetime import timedelta

import pytest

from fakes import T0, build_session, make_exercise_payloads
from training.core.errors import (
    InvalidConfigError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
)
from training.core.models import SessionStatus
from training.core.session_manager import CreateSessionConfig, SessionManager


async def start(manager, student_id="stu-1", curriculum="abacus", trainer_id="trn-1", **kwargs):
    config = CreateSessionConfig(
        student_id=student_id, curriculum=curriculum, trainer_id=trainer_id, **kwargs
    )
    return await manager.create(config)


async def answer_next(manager, session_id, index, correct=True, time_spent=3.0):
    """Answer exercise `index` of the default batch (its answer is index + 1)."""
    answer = str(index + 1) if correct else "-1"
    return await manager.submit_answer(session_id, answer, time_spent)


class TestCreate:
    @pytest.mark.asyncio
    async def test_returns_first_exercise(self, manager, session_store, notifications):
        created = await start(manager)

        assert created["session_id"].startswith("sess-")
        assert created["status"] == "active"
        assert created["level"] == "beginner"
        assert created["total_questions"] == 10
        assert created["exercise"]["exercise_id"] == "ex001"
        assert "correct_answer" not in created["exercise"]
        assert created["progress"] == {"current": 0, "total": 10, "percentage": 0}
        assert created["time_remaining"] == 30 * 60
        assert session_store.save_count == 1
        assert notifications.types("student:stu-1") == ["SessionCreated"]
        assert notifications.types("trainer:trn-1") == ["StudentSessionStarted"]
        assert manager.is_live(created["session_id"])

    @pytest.mark.asyncio
    async def test_passes_adaptive_profile_to_generator(self, manager, adaptive, generator):
        adaptive.profile = {"exercise_types": {"addition": {"attempts": 5, "correct": 1}}}
        await start(manager, age_group="7_to_10", session_type="assessment")

        call = generator.calls[0]
        assert call["adaptive_hint"] == adaptive.profile
        assert call["age_group"] == "7_to_10"
        assert call["session_type"] == "assessment"
        assert call["level"] == "beginner"

    @pytest.mark.asyncio
    async def test_adaptive_profile_failure_is_tolerated(self, manager, adaptive, generator):
        async def broken(*args):
            raise RuntimeError("profile store down")

        adaptive.get_profile = broken
        created = await start(manager)

        assert created["status"] == "active"
        assert generator.calls[0]["adaptive_hint"] is None

    @pytest.mark.asyncio
    async def test_level_defaults_to_first_of_progression(self, manager):
        created = await start(manager, student_id="stu-2", curriculum="vedic", trainer_id=None)
        assert created["level"] == "beginner"

    @pytest.mark.asyncio
    async def test_explicit_level(self, manager, generator):
        created = await start(manager, level="intermediate")
        assert created["level"] == "intermediate"
        assert generator.calls[0]["level"] == "intermediate"

    @pytest.mark.asyncio
    async def test_custom_settings(self, manager, generator):
        created = await start(
            manager, custom_settings={"duration_minutes": 10, "exercise_count": 3, "allow_hints": False}
        )
        assert created["total_questions"] == 3
        assert created["time_remaining"] == 600
        assert created["settings"]["allow_hints"] is False

    @pytest.mark.asyncio
    async def test_bank_settings_apply_under_custom_settings(self, manager, generator):
        generator.settings = {"allow_skip": False, "duration_minutes": 20}
        created = await start(manager, custom_settings={"duration_minutes": 5})
        assert created["settings"]["allow_skip"] is False
        assert created["time_remaining"] == 300

    @pytest.mark.asyncio
    async def test_unknown_student(self, manager):
        with pytest.raises(NotFoundError):
            await start(manager, student_id="nobody")

    @pytest.mark.asyncio
    async def test_trainer_must_be_a_trainer(self, manager):
        with pytest.raises(NotFoundError):
            await start(manager, trainer_id="stu-2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"curriculum": "chess"},
            {"student_id": "  "},
            {"level": " "},
            {"custom_settings": {"colour": "blue"}},
            {"custom_settings": {"duration_minutes": 0}},
            {"custom_settings": {"exercise_count": True}},
            {"custom_settings": {"exercise_count": 2.5}},
        ],
    )
    async def test_invalid_config(self, manager, overrides):
        with pytest.raises(InvalidConfigError):
            await start(manager, **overrides)

    @pytest.mark.asyncio
    async def test_empty_batch(self, manager, generator):
        generator.exercises = []
        with pytest.raises(InvalidConfigError):
            await start(manager)
        assert await manager.list_active() == []


class TestExerciseFlow:
    @pytest.mark.asyncio
    async def test_correct_answer_advances(self, manager, adaptive, notifications):
        created = await start(manager)
        sid = created["session_id"]

        result = await answer_next(manager, sid, 0, time_spent=2.5)

        assert result["is_correct"] is True
        assert result["correct_answer"] == "1"
        assert result["accuracy"] == 100.0
        assert result["progress"]["current"] == 1
        assert result["session_completed"] is False
        assert result["next_exercise"]["exercise_id"] == "ex002"
        assert adaptive.outcomes == [("stu-1", "abacus", "addition", True, 2.5)]
        assert "AnswerSubmitted" in notifications.types("student:stu-1")
        assert "StudentProgress" in notifications.types("trainer:trn-1")

    @pytest.mark.asyncio
    async def test_numeric_tolerance(self, manager):
        sid = (await start(manager))["session_id"]
        assert (await manager.submit_answer(sid, "1.0009", 1.0))["is_correct"] is True
        assert (await manager.submit_answer(sid, "2.01", 1.0))["is_correct"] is False

    @pytest.mark.asyncio
    async def test_non_finite_time_leaves_session_unchanged(self, manager, adaptive):
        sid = (await start(manager))["session_id"]

        with pytest.raises(PolicyViolationError):
            await manager.submit_answer(sid, "1", float("nan"))

        status = await manager.get_status(sid)
        assert status["progress"]["current"] == 0
        assert status["statistics"]["correct_answers"] == 0
        assert adaptive.outcomes == []
        result = await answer_next(manager, sid, 0, time_spent=2.0)
        assert result["accuracy"] == 100.0

    @pytest.mark.asyncio
    async def test_counters_track_current_index(self, manager):
        sid = (await start(manager))["session_id"]
        await answer_next(manager, sid, 0)
        await answer_next(manager, sid, 1, correct=False)
        await manager.skip(sid)
        await answer_next(manager, sid, 3)

        status = await manager.get_status(sid)
        stats = status["statistics"]
        answered = stats["correct_answers"] + stats["incorrect_answers"] + stats["skipped_questions"]
        assert answered == status["progress"]["current"] == 4
        assert stats["accuracy"] == pytest.approx(200 / 3)
        assert stats["completion_rate"] == 30.0

    @pytest.mark.asyncio
    async def test_current_exercise(self, manager, notifications):
        sid = (await start(manager))["session_id"]
        current = await manager.get_current_exercise(sid)

        assert current["completed"] is False
        assert current["exercise"]["exercise_id"] == "ex001"
        assert current["hints_available"] == 2
        assert "ExerciseViewed" in notifications.types("trainer:trn-1")

    @pytest.mark.asyncio
    async def test_skip(self, manager, notifications):
        sid = (await start(manager))["session_id"]
        result = await manager.skip(sid, reason="too hard")

        assert result["skipped"] is True
        assert result["next_exercise"]["exercise_id"] == "ex002"
        assert "ExerciseSkipped" in notifications.types("student:stu-1")

    @pytest.mark.asyncio
    async def test_skip_disabled(self, manager, generator):
        generator.settings = {"allow_skip": False}
        sid = (await start(manager))["session_id"]
        with pytest.raises(PolicyViolationError):
            await manager.skip(sid)

    @pytest.mark.asyncio
    async def test_hints(self, manager):
        sid = (await start(manager))["session_id"]

        first = await manager.request_hint(sid, 0)
        second = await manager.request_hint(sid, 1)

        assert first["hint"] == "hint 0 for 0"
        assert first["has_more_hints"] is True
        assert second["has_more_hints"] is False
        assert second["hints_used"] == 2

    @pytest.mark.asyncio
    async def test_hint_out_of_range(self, manager):
        sid = (await start(manager))["session_id"]
        with pytest.raises(PolicyViolationError):
            await manager.request_hint(sid, 2)
        with pytest.raises(PolicyViolationError):
            await manager.request_hint(sid, -1)

    @pytest.mark.asyncio
    async def test_hints_disabled(self, manager):
        sid = (await start(manager, custom_settings={"allow_hints": False}))["session_id"]
        with pytest.raises(PolicyViolationError):
            await manager.request_hint(sid, 0)
        assert (await manager.get_current_exercise(sid))["hints_available"] == 0

    @pytest.mark.asyncio
    async def test_exercise_without_hints(self, manager, generator):
        generator.exercises = make_exercise_payloads(3, hints=0)
        sid = (await start(manager))["session_id"]
        with pytest.raises(PolicyViolationError):
            await manager.request_hint(sid, 0)

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        with pytest.raises(NotFoundError):
            await manager.submit_answer("sess-missing", "1", 1.0)
        with pytest.raises(NotFoundError):
            await manager.get_current_exercise("sess-missing")


class TestFinishing:
    @pytest.mark.asyncio
    async def test_nine_correct_one_skipped(self, manager, session_store):
        sid = (await start(manager))["session_id"]
        for i in range(9):
            await answer_next(manager, sid, i, time_spent=3.0)

        result = await manager.skip(sid)

        assert result["session_completed"] is True
        assert result["next_exercise"] is None
        summary = result["summary"]
        assert summary["accuracy"] == 100.0
        assert summary["completion_rate"] == 90.0
        assert summary["average_time_per_question"] == 3.0
        assert summary["result"] == "excellent"
        assert summary["completion_reason"] == "all_exercises_completed"
        assert summary["assessment"]["performance"]["scores"]["completion"] == 90.0
        assert not manager.is_live(sid)
        assert session_store.sessions[sid].status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_last_answer_completes(self, manager, notifications):
        sid = (await start(manager, custom_settings={"exercise_count": 2}))["session_id"]
        await answer_next(manager, sid, 0)
        result = await answer_next(manager, sid, 1, correct=False)

        assert result["session_completed"] is True
        assert result["summary"]["accuracy"] == 50.0
        assert result["summary"]["result"] == "poor"

        completed = [e for e in notifications.events if e.event_type.value == "SessionCompleted"]
        assert len(completed) == 1
        assert "assessment" not in completed[0].data
        assert completed[0].data["grade"]
        assert "StudentSessionCompleted" in notifications.types("trainer:trn-1")

    @pytest.mark.asyncio
    async def test_operations_after_completion(self, manager):
        sid = (await start(manager, custom_settings={"exercise_count": 1}))["session_id"]
        await answer_next(manager, sid, 0)

        with pytest.raises(NotFoundError):
            await manager.submit_answer(sid, "1", 1.0)
        with pytest.raises(NotFoundError):
            await manager.pause(sid)


class TestPauseResume:
    @pytest.mark.asyncio
    async def test_pause_offset(self, manager, clock):
        sid = (await start(manager))["session_id"]
        clock.advance(60)

        paused = await manager.pause(sid)
        assert paused["status"] == "paused"
        assert paused["time_remaining"] == 1740

        clock.advance(120)
        resumed = await manager.resume(sid)

        assert resumed["status"] == "active"
        assert resumed["total_pause_seconds"] == 120
        assert resumed["time_remaining"] == 1740
        assert resumed["exercise"]["exercise_id"] == "ex001"

    @pytest.mark.asyncio
    async def test_remaining_time_frozen_while_paused(self, manager, clock):
        sid = (await start(manager))["session_id"]
        await manager.pause(sid)
        clock.advance(500)
        assert (await manager.get_status(sid))["time_remaining"] == 1800

    @pytest.mark.asyncio
    async def test_paused_session_rejects_answers(self, manager):
        sid = (await start(manager))["session_id"]
        await manager.pause(sid)

        with pytest.raises(InvalidStateError):
            await manager.submit_answer(sid, "1", 1.0)
        with pytest.raises(InvalidStateError):
            await manager.skip(sid)
        with pytest.raises(InvalidStateError):
            await manager.request_hint(sid, 0)
        with pytest.raises(InvalidStateError):
            await manager.pause(sid)

    @pytest.mark.asyncio
    async def test_resume_requires_pause(self, manager):
        sid = (await start(manager))["session_id"]
        with pytest.raises(InvalidStateError):
            await manager.resume(sid)

    @pytest.mark.asyncio
    async def test_timers_follow_pause_state(self, manager):
        sid = (await start(manager))["session_id"]
        entry = manager._live[sid]
        assert entry.timers.armed

        await manager.pause(sid)
        assert not entry.timers.armed

        await manager.resume(sid)
        assert entry.timers.armed

    @pytest.mark.asyncio
    async def test_events(self, manager, notifications):
        sid = (await start(manager))["session_id"]
        await manager.pause(sid, reason="break")
        await manager.resume(sid)
        assert notifications.types("trainer:trn-1")[-2:] == [
            "StudentSessionPaused",
            "StudentSessionResumed",
        ]


class TestComplete:
    @pytest.mark.asyncio
    async def test_manual_complete_is_idempotent(self, manager, notifications):
        sid = (await start(manager))["session_id"]
        await answer_next(manager, sid, 0)

        first = await manager.complete(sid)
        second = await manager.complete(sid)

        assert first == second
        assert first["completion_reason"] == "manual"
        assert first["completion_rate"] == 10.0
        assert notifications.types("student:stu-1").count("SessionCompleted") == 1

    @pytest.mark.asyncio
    async def test_concurrent_complete(self, manager, notifications):
        sid = (await start(manager))["session_id"]

        first, second = await asyncio.gather(manager.complete(sid), manager.complete(sid, "timeout"))

        assert first == second
        assert notifications.types("student:stu-1").count("SessionCompleted") == 1

    @pytest.mark.asyncio
    async def test_complete_unknown(self, manager):
        with pytest.raises(NotFoundError):
            await manager.complete("sess-missing")

    @pytest.mark.asyncio
    async def test_complete_from_paused(self, manager, clock):
        sid = (await start(manager))["session_id"]
        clock.advance(60)
        await manager.pause(sid)
        clock.advance(100)

        summary = await manager.complete(sid)

        assert summary["statistics"]["actual_duration"] == 60
        status = await manager.get_status(sid)
        assert status["status"] == "completed"
        assert status["live"] is False

    @pytest.mark.asyncio
    async def test_status_falls_back_to_store(self, manager, session_store):
        stored = build_session(session_id="sess-old")
        session_store.sessions["sess-old"] = stored

        status = await manager.get_status("sess-old")

        assert status["status"] == "completed"
        assert status["live"] is False
        with pytest.raises(NotFoundError):
            await manager.get_status("sess-none")

    @pytest.mark.asyncio
    async def test_completion_triggers_promotion(self, manager, session_store, directory, clock):
        for i in range(4):
            session = build_session(
                accuracy=95, average_time=4.0, end_time=T0 - timedelta(days=i + 1), session_id=f"old-{i}"
            )
            session_store.sessions[session.session_id] = session

        sid = (await start(manager))["session_id"]
        for i in range(10):
            result = await answer_next(manager, sid, i, time_spent=3.0)

        summary = result["summary"]
        assert summary["promotion"]["eligible"] is True
        assert summary["promotion"]["status"] == "auto_approved"
        assert summary["promotion"]["next_level"] == "elementary"
        assert summary["assessment"]["comparison"]["previous_sessions"] == 4
        assert directory.users["stu-1"].current_levels["abacus"] == "elementary"

    @pytest.mark.asyncio
    async def test_ineligible_completion(self, manager, directory):
        sid = (await start(manager))["session_id"]
        summary = await manager.complete(sid)

        assert summary["promotion"]["eligible"] is False
        assert summary["promotion"]["promotion_id"] is None
        assert directory.users["stu-1"].current_levels["abacus"] == "beginner"


class TestTimers:
    @pytest.mark.asyncio
    async def test_timeout_completes_session(self, manager, session_store):
        sid = (await start(manager, custom_settings={"duration_minutes": 0.001}))["session_id"]

        await asyncio.sleep(0.3)

        assert not manager.is_live(sid)
        assert session_store.sessions[sid].completion_reason == "timeout"
        assert (await manager.complete(sid))["completion_reason"] == "timeout"

    @pytest.mark.asyncio
    async def test_paused_session_does_not_time_out(self, manager):
        sid = (await start(manager, custom_settings={"duration_minutes": 0.001}))["session_id"]
        await manager.pause(sid)

        await asyncio.sleep(0.2)

        assert manager.is_live(sid)
        assert (await manager.get_status(sid))["status"] == "paused"

    @pytest.mark.asyncio
    async def test_stale_timeout_is_a_no_op(self, manager):
        sid = (await start(manager))["session_id"]
        summary = await manager.complete(sid)

        await manager._on_timeout(sid)

        assert (await manager.complete(sid)) == summary

    @pytest.mark.asyncio
    async def test_auto_save(self, manager, session_store, app_config):
        app_config.lifecycle.auto_save_interval_seconds = 0.02
        sid = (await start(manager))["session_id"]
        saves_after_create = session_store.save_count

        await asyncio.sleep(0.15)

        assert session_store.save_count > saves_after_create
        assert session_store.sessions[sid].status == SessionStatus.ACTIVE
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_auto_save_disabled(self, manager, session_store, app_config):
        app_config.lifecycle.auto_save_interval_seconds = 0.02
        await start(manager, custom_settings={"auto_save": False})
        saves_after_create = session_store.save_count

        await asyncio.sleep(0.1)

        assert session_store.save_count == saves_after_create
        await manager.shutdown()


class TestCleanup:
    @pytest.mark.asyncio
    async def test_inactive_sessions_are_completed(self, manager, clock, session_store):
        idle = (await start(manager))["session_id"]
        clock.advance(1000)
        busy = (await start(manager, student_id="stu-2", trainer_id=None))["session_id"]
        clock.advance(900)

        cleaned = await manager.cleanup_inactive()

        assert cleaned == 1
        assert not manager.is_live(idle)
        assert manager.is_live(busy)
        assert session_store.sessions[idle].completion_reason == "inactive"

    @pytest.mark.asyncio
    async def test_heartbeat_keeps_session_alive(self, manager, clock):
        sid = (await start(manager))["session_id"]
        clock.advance(1000)
        beat = await manager.heartbeat(sid)
        clock.advance(900)

        assert beat["last_activity"] == (T0 + timedelta(seconds=1000)).isoformat()
        assert await manager.cleanup_inactive() == 0
        assert manager.is_live(sid)

    @pytest.mark.asyncio
    async def test_custom_threshold(self, manager, clock):
        await start(manager)
        clock.advance(61)
        assert await manager.cleanup_inactive(threshold_seconds=60) == 1


class TestSideEffectFailures:
    @pytest.mark.asyncio
    async def test_store_outage_does_not_block_session(self, manager, session_store):
        session_store.fail_saves = True
        sid = (await start(manager, custom_settings={"exercise_count": 2}))["session_id"]

        await answer_next(manager, sid, 0)
        result = await answer_next(manager, sid, 1)

        assert result["session_completed"] is True
        assert result["summary"]["accuracy"] == 100.0
        assert session_store.sessions == {}

    @pytest.mark.asyncio
    async def test_notification_outage_does_not_block_session(self, manager, notifications):
        notifications.fail = True
        sid = (await start(manager))["session_id"]

        result = await answer_next(manager, sid, 0)
        await manager.pause(sid)

        assert result["is_correct"] is True
        assert (await manager.get_status(sid))["status"] == "paused"
        assert notifications.events == []


class TestPersistenceOrdering:
    @pytest.mark.asyncio
    async def test_late_active_save_cannot_reopen_completed_session(
        self, manager, session_store, adaptive
    ):
        sid = (await start(manager, custom_settings={"exercise_count": 2}))["session_id"]
        record = adaptive.record_outcome
        calls = []

        async def slow_first(*args):
            calls.append(args)
            if len(calls) == 1:
                await asyncio.sleep(0.05)
            await record(*args)

        adaptive.record_outcome = slow_first
        await asyncio.gather(answer_next(manager, sid, 0), answer_next(manager, sid, 1))
        await asyncio.sleep(0.1)

        stored = await session_store.load_session(sid)
        assert stored.status == SessionStatus.COMPLETED
        assert stored.current_index == 2
        assert session_store.stale_saves == 1

    @pytest.mark.asyncio
    async def test_revision_grows_with_each_save(self, manager, session_store):
        sid = (await start(manager, custom_settings={"exercise_count": 2}))["session_id"]
        created = (await session_store.load_session(sid)).revision

        await answer_next(manager, sid, 0)
        answered = (await session_store.load_session(sid)).revision
        await answer_next(manager, sid, 1)
        completed = (await session_store.load_session(sid)).revision

        assert created < answered < completed


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_list_active(self, manager):
        first = (await start(manager))["session_id"]
        second = (await start(manager, student_id="stu-2", trainer_id=None))["session_id"]
        await manager.complete(second)

        active = await manager.list_active()

        assert [s["session_id"] for s in active] == [first]
        assert active[0]["progress"]["total"] == 10

    @pytest.mark.asyncio
    async def test_trainer_notes_on_live_and_completed(self, manager, session_store):
        sid = (await start(manager))["session_id"]
        live = await manager.add_trainer_notes(sid, "focused")
        assert live["trainer_notes"] == "focused"
        assert live["live"] is True

        await manager.complete(sid)
        done = await manager.add_trainer_notes(sid, "good work")

        assert done["trainer_notes"] == "good work"
        assert session_store.sessions[sid].trainer_notes == "good work"
        assert (await manager.get_status(sid))["trainer_notes"] == "good work"

    @pytest.mark.asyncio
    async def test_notes_for_unknown_session(self, manager):
        with pytest.raises(NotFoundError):
            await manager.add_trainer_notes("sess-missing", "x")

    @pytest.mark.asyncio
    async def test_shutdown_and_restore(
        self, manager, session_store, generator, directory, notifications, adaptive,
        promotion_service, app_config, clock,
    ):
        active = (await start(manager))["session_id"]
        paused = (await start(manager, student_id="stu-2", trainer_id=None))["session_id"]
        await answer_next(manager, active, 0)
        await manager.pause(paused)

        await manager.shutdown()

        restarted = SessionManager(
            generator=generator,
            store=session_store,
            directory=directory,
            notifications=notifications,
            adaptive=adaptive,
            promotions=promotion_service,
            config=app_config,
            clock=clock,
        )
        assert await restarted.restore() == 2
        assert restarted._live[active].timers.armed
        assert not restarted._live[paused].timers.armed

        status = await restarted.get_status(active)
        assert status["progress"]["current"] == 1
        result = await answer_next(restarted, active, 1)
        assert result["progress"]["current"] == 2
        await restarted.shutdown()

    @pytest.mark.asyncio
    async def test_restore_failure(self, manager, session_store):
        async def broken():
            raise RuntimeError("disk gone")

        session_store.open_sessions = broken
        assert await manager.restore() == 0
