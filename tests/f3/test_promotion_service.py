"""Tests for the promotion workflow (record, execute, approve, reject)."""

from datetime import timedelta

import pytest

from fakes import T0, build_session
from training.config.app_config import PromotionConfig
from training.config.criteria import load_criteria_table
from training.core.errors import InvalidStateError, NotFoundError
from training.core.promotion import PromotionStatus
from training.core.promotion_service import (
    PromotionRecord,
    PromotionService,
    PromotionType,
    outcome_view,
)


def seed(store, count, accuracy=95.0, average_time=4.0, student_id="stu-1", level="beginner"):
    for i in range(count):
        session = build_session(
            accuracy=accuracy,
            average_time=average_time,
            student_id=student_id,
            level=level,
            end_time=T0 - timedelta(hours=i + 1),
            session_id=f"{student_id}-{level}-{i}",
        )
        store.sessions[session.session_id] = session


@pytest.fixture
def manual_service(session_store, promotion_store, directory, adaptive, clock):
    """Service whose threshold no decision can reach, so everything is pending."""
    return PromotionService(
        sessions=session_store,
        promotions=promotion_store,
        directory=directory,
        adaptive=adaptive,
        config=PromotionConfig(auto_approval_confidence=101),
        criteria=load_criteria_table,
        clock=clock,
    )


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_current_session_counts_as_newest(self, promotion_service, session_store):
        seed(session_store, 4)
        current = build_session(accuracy=95, end_time=T0, session_id="current")

        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner", current=current)

        assert decision.eligible is True
        assert decision.session_ids[0] == "current"
        assert len(decision.session_ids) == 5

    @pytest.mark.asyncio
    async def test_window_is_truncated(self, promotion_service, session_store):
        seed(session_store, 15)
        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner")
        assert len(decision.session_ids) == 10

    @pytest.mark.asyncio
    async def test_check_student_uses_current_level(self, promotion_service, session_store):
        seed(session_store, 5)
        decision = await promotion_service.check_student("stu-1", "abacus")
        assert decision.from_level == "beginner"
        assert decision.eligible is True

    @pytest.mark.asyncio
    async def test_check_student_defaults_to_first_level(self, promotion_service):
        decision = await promotion_service.check_student("stu-2", "vedic")
        assert decision.from_level == "beginner"
        assert decision.eligible is False

    @pytest.mark.asyncio
    async def test_check_unknown_student(self, promotion_service):
        with pytest.raises(NotFoundError):
            await promotion_service.check_student("nobody", "abacus")

    @pytest.mark.asyncio
    async def test_check_trainer_is_not_a_student(self, promotion_service):
        with pytest.raises(NotFoundError):
            await promotion_service.check_student("trn-1", "abacus")


class TestProcessDecision:
    @pytest.mark.asyncio
    async def test_auto_approval_executes_level_change(
        self, promotion_service, session_store, promotion_store, directory, adaptive, clock
    ):
        seed(session_store, 5)
        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner")

        record = await promotion_service.process_decision(decision)

        assert record.status == PromotionStatus.AUTO_APPROVED
        assert record.promotion_type == PromotionType.AUTOMATIC
        assert record.approved_by == "system"
        assert record.executed_at == clock.now
        assert directory.users["stu-1"].current_levels["abacus"] == "elementary"
        assert directory.users["stu-1"].promotion_history[0]["promotion_id"] == record.promotion_id
        assert adaptive.promotions == [("stu-1", "abacus", "beginner", "elementary", 100)]
        assert promotion_store.records[record.promotion_id].executed_at is not None

    @pytest.mark.asyncio
    async def test_ineligible_decision_is_not_recorded(
        self, promotion_service, session_store, promotion_store
    ):
        seed(session_store, 2)
        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner")
        assert await promotion_service.process_decision(decision) is None
        assert promotion_store.records == {}

    @pytest.mark.asyncio
    async def test_pending_leaves_level_alone(self, manual_service, session_store, directory):
        seed(session_store, 5)
        decision = await manual_service.evaluate("stu-1", "abacus", "beginner")

        record = await manual_service.process_decision(decision)

        assert record.status == PromotionStatus.PENDING
        assert record.promotion_type == PromotionType.MANUAL
        assert record.approved_by is None
        assert directory.users["stu-1"].current_levels["abacus"] == "beginner"

    @pytest.mark.asyncio
    async def test_adaptive_failure_does_not_undo_promotion(
        self, promotion_service, session_store, directory, adaptive
    ):
        async def broken(*args):
            raise RuntimeError("profile store down")

        adaptive.record_promotion = broken
        seed(session_store, 5)
        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner")

        record = await promotion_service.process_decision(decision)

        assert record.executed_at is not None
        assert directory.users["stu-1"].current_levels["abacus"] == "elementary"


class TestTrainerActions:
    async def _pending(self, service, store):
        seed(store, 5)
        decision = await service.evaluate("stu-1", "abacus", "beginner")
        return await service.process_decision(decision)

    @pytest.mark.asyncio
    async def test_approve(self, manual_service, session_store, directory, clock):
        pending = await self._pending(manual_service, session_store)
        clock.advance(3600)

        record = await manual_service.approve(pending.promotion_id, "trn-1", notes="ready")

        assert record.status == PromotionStatus.APPROVED
        assert record.approved_by == "trn-1"
        assert record.approved_at == clock.now
        assert record.trainer_notes == "ready"
        assert record.executed_at == clock.now
        assert directory.users["stu-1"].current_levels["abacus"] == "elementary"

    @pytest.mark.asyncio
    async def test_approve_twice(self, manual_service, session_store):
        pending = await self._pending(manual_service, session_store)
        await manual_service.approve(pending.promotion_id, "trn-1")
        with pytest.raises(InvalidStateError):
            await manual_service.approve(pending.promotion_id, "trn-1")

    @pytest.mark.asyncio
    async def test_reject(self, manual_service, session_store, directory, promotion_store):
        pending = await self._pending(manual_service, session_store)

        record = await manual_service.reject(pending.promotion_id, "trn-1", reason="not yet")

        assert record.status == PromotionStatus.REJECTED
        assert record.rejected_by == "trn-1"
        assert record.rejection_reason == "not yet"
        assert directory.users["stu-1"].current_levels["abacus"] == "beginner"
        assert promotion_store.records[pending.promotion_id].status == PromotionStatus.REJECTED

    @pytest.mark.asyncio
    async def test_reject_after_approval(self, manual_service, session_store):
        pending = await self._pending(manual_service, session_store)
        await manual_service.approve(pending.promotion_id, "trn-1")
        with pytest.raises(InvalidStateError):
            await manual_service.reject(pending.promotion_id, "trn-1")

    @pytest.mark.asyncio
    async def test_unknown_promotion(self, manual_service):
        with pytest.raises(NotFoundError):
            await manual_service.approve("prom-missing", "trn-1")
        with pytest.raises(NotFoundError):
            await manual_service.reject("prom-missing", "trn-1")


class TestQueries:
    @pytest.mark.asyncio
    async def test_pending_and_history(self, manual_service, session_store):
        seed(session_store, 5)
        seed(session_store, 5, student_id="stu-2")
        first = await manual_service.process_decision(
            await manual_service.evaluate("stu-1", "abacus", "beginner")
        )
        second = await manual_service.process_decision(
            await manual_service.evaluate("stu-2", "abacus", "beginner")
        )
        await manual_service.reject(second.promotion_id, "trn-1")

        pending = await manual_service.pending()
        assert [r.promotion_id for r in pending] == [first.promotion_id]
        assert await manual_service.pending(curriculum="vedic") == []

        history = await manual_service.history("stu-2")
        assert [r.status for r in history] == [PromotionStatus.REJECTED]

    @pytest.mark.asyncio
    async def test_statistics(self, promotion_service, manual_service, session_store, clock):
        seed(session_store, 5)
        seed(session_store, 5, student_id="stu-2")
        await promotion_service.process_decision(
            await promotion_service.evaluate("stu-1", "abacus", "beginner")
        )
        await manual_service.process_decision(
            await manual_service.evaluate("stu-2", "abacus", "beginner")
        )

        stats = await promotion_service.statistics(days=30)

        assert stats["total"] == 2
        assert stats["by_status"]["auto_approved"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["by_status"]["rejected"] == 0
        assert stats["auto_approval_rate"] == 50.0
        assert stats["by_curriculum"] == {"abacus": 2}
        assert stats["by_transition"] == {"beginner->elementary": 2}

        clock.advance(31 * 86400)
        assert (await promotion_service.statistics(days=30))["total"] == 0


class TestRecordSerialization:
    @pytest.mark.asyncio
    async def test_round_trip_and_outcome(self, promotion_service, session_store):
        seed(session_store, 5)
        decision = await promotion_service.evaluate("stu-1", "abacus", "beginner")
        record = await promotion_service.process_decision(decision)

        restored = PromotionRecord.from_dict(record.to_dict())
        assert restored.status == record.status
        assert restored.to_level == "elementary"
        assert restored.executed_at == record.executed_at

        outcome = outcome_view(decision, record)
        assert outcome["eligible"] is True
        assert outcome["status"] == "auto_approved"
        assert outcome["next_level"] == "elementary"
        assert outcome_view(None, None) is None
