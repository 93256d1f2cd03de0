"""End-to-end session lifecycle over the SQLite adapters."""

import random

import pytest

from fakes import FakeClock, RecordingNotificationChannel
from training.config.app_config import AppConfig
from training.config.criteria import load_criteria_table
from training.core.exercise_bank import FileExerciseGenerator
from training.core.promotion_service import PromotionService
from training.core.session_manager import CreateSessionConfig, SessionManager
from training.db.adaptive_repository import SqliteAdaptiveProfileStore, load_profile
from training.db.promotion_repository import SqlitePromotionStore
from training.db.session_repository import SqliteSessionStore, get_session
from training.db.users_repository import SqliteUserDirectory, get_user


@pytest.fixture
def sqlite_manager(seeded_users):
    config = AppConfig()
    clock = FakeClock()
    promotions = PromotionService(
        sessions=SqliteSessionStore(),
        promotions=SqlitePromotionStore(),
        directory=SqliteUserDirectory(),
        adaptive=SqliteAdaptiveProfileStore(),
        config=config.promotion,
        criteria=load_criteria_table,
        clock=clock,
    )
    return SessionManager(
        generator=FileExerciseGenerator("data/exercises", config.lifecycle, random.Random(7)),
        store=SqliteSessionStore(),
        directory=SqliteUserDirectory(),
        notifications=RecordingNotificationChannel(),
        adaptive=SqliteAdaptiveProfileStore(),
        promotions=promotions,
        config=config,
        clock=clock,
    )


class TestSqliteLifecycle:
    @pytest.mark.asyncio
    async def test_session_is_persisted_through_completion(self, sqlite_manager):
        created = await sqlite_manager.create(
            CreateSessionConfig(
                student_id="stu-1",
                curriculum="abacus",
                trainer_id="trn-1",
                custom_settings={"exercise_count": 3},
            )
        )
        sid = created["session_id"]
        assert get_session(sid).status.value == "active"

        for _ in range(3):
            await sqlite_manager.submit_answer(sid, "0", 2.0)

        stored = get_session(sid)
        assert stored.status.value == "completed"
        assert stored.completion_reason == "all_exercises_completed"
        assert stored.correct_answers + stored.incorrect_answers == 3
        assert len(stored.exercises) == 3

        profile = load_profile("stu-1", "abacus")
        attempts = sum(t["attempts"] for t in profile["exercise_types"].values())
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_restore_from_database(self, sqlite_manager):
        created = await sqlite_manager.create(
            CreateSessionConfig(student_id="stu-2", curriculum="vedic")
        )
        await sqlite_manager.shutdown()

        assert await sqlite_manager.restore() == 0  # already live
        status = await sqlite_manager.get_status(created["session_id"])
        assert status["level"] == "beginner"
        assert get_user("stu-2").current_levels == {}
        await sqlite_manager.shutdown()
