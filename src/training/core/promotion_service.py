"""Promotion workflow around the pure evaluator.

Responsibilities:
- Fetch the recent session window and evaluate eligibility
- Record eligible decisions as PromotionRecords (auto-approved or pending)
- Execute level changes (auto-approval or trainer approval)
- Trainer approve/reject transitions on pending records
- Queries: pending, per-student history, statistics
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

import structlog

from training.config.app_config import PromotionConfig
from training.config.criteria import CriteriaTable, load_criteria_table
from training.core.errors import InvalidStateError, NotFoundError
from training.core.models import TrainingSession, utcnow
from training.core.ports import AdaptiveProfileStore, PromotionStore, SessionStore, UserDirectory
from training.core.promotion import (
    PromotionDecision,
    PromotionStatus,
    evaluate_promotion,
)

logger = structlog.get_logger(__name__)

SYSTEM_APPROVER = "system"


class PromotionType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class PromotionRecord:
    """A recorded promotion and its approval trail."""

    promotion_id: str
    decision: PromotionDecision
    status: PromotionStatus
    promotion_type: PromotionType
    created_at: datetime
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    trainer_notes: str | None = None
    executed_at: datetime | None = None

    @property
    def student_id(self) -> str:
        return self.decision.student_id

    @property
    def curriculum(self) -> str:
        return self.decision.curriculum

    @property
    def from_level(self) -> str:
        return self.decision.from_level

    @property
    def to_level(self) -> str | None:
        return self.decision.to_level

    @property
    def confidence(self) -> int:
        return self.decision.confidence

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "promotion_id": self.promotion_id,
            "student_id": self.student_id,
            "curriculum": self.curriculum,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "confidence": self.confidence,
            "status": self.status.value,
            "promotion_type": self.promotion_type.value,
            "created_at": self.created_at.isoformat(),
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "trainer_notes": self.trainer_notes,
            "executed_at": _iso(self.executed_at),
            "decision": self.decision.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromotionRecord:
        return cls(
            promotion_id=data["promotion_id"],
            decision=PromotionDecision.from_dict(data["decision"]),
            status=PromotionStatus(data["status"]),
            promotion_type=PromotionType(data.get("promotion_type", "manual")),
            created_at=datetime.fromisoformat(data["created_at"]),
            approved_by=data.get("approved_by"),
            approved_at=_parse_dt(data.get("approved_at")),
            rejected_by=data.get("rejected_by"),
            rejected_at=_parse_dt(data.get("rejected_at")),
            rejection_reason=data.get("rejection_reason"),
            trainer_notes=data.get("trainer_notes"),
            executed_at=_parse_dt(data.get("executed_at")),
        )


def outcome_view(decision: PromotionDecision | None, record: PromotionRecord | None) -> dict | None:
    """Compact promotion outcome attached to completion payloads."""
    if decision is None:
        return None
    return {
        "eligible": decision.eligible,
        "status": record.status.value if record else None,
        "next_level": decision.to_level,
        "confidence": decision.confidence,
        "promotion_id": record.promotion_id if record else None,
        "reasons": list(decision.reasons),
        "recommendation": decision.recommendation,
    }


class PromotionService:
    """Evaluates, records and executes promotions."""

    def __init__(
        self,
        sessions: SessionStore,
        promotions: PromotionStore,
        directory: UserDirectory,
        adaptive: AdaptiveProfileStore,
        config: PromotionConfig | None = None,
        criteria: Callable[[], CriteriaTable] = load_criteria_table,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._sessions = sessions
        self._promotions = promotions
        self._directory = directory
        self._adaptive = adaptive
        self.config = config or PromotionConfig()
        self._criteria = criteria
        self._clock = clock

    def criteria(self) -> CriteriaTable:
        """Current criteria table."""
        return self._criteria()

    async def evaluate(
        self,
        student_id: str,
        curriculum: str,
        level: str,
        current: TrainingSession | None = None,
    ) -> PromotionDecision:
        """Evaluate eligibility over the most recent completed sessions.

        Args:
            student_id: Student to evaluate
            curriculum: Curriculum value
            level: Level the sessions were taken at
            current: Just-completed session, counted as the newest even if
                the store has not caught up with it yet
        """
        window = self.config.recent_window
        exclude = current.session_id if current is not None else None
        sessions = await self._sessions.recent_sessions(
            student_id, curriculum, level, limit=window, exclude_id=exclude
        )
        if current is not None:
            sessions = [current, *sessions]
        return evaluate_promotion(
            student_id,
            curriculum,
            level,
            sessions[:window],
            self._criteria(),
            auto_approval_confidence=self.config.auto_approval_confidence,
        )

    async def check_student(self, student_id: str, curriculum: str) -> PromotionDecision:
        """Evaluate a student at their current level without recording anything."""
        level = await self._current_level(student_id, curriculum)
        return await self.evaluate(student_id, curriculum, level)

    async def process_decision(self, decision: PromotionDecision) -> PromotionRecord | None:
        """Record an eligible decision; execute it if auto-approved.

        Ineligible decisions are not recorded.
        """
        if not decision.eligible or decision.status is None:
            return None

        now = self._clock()
        automatic = decision.status == PromotionStatus.AUTO_APPROVED
        record = PromotionRecord(
            promotion_id=decision.decision_id,
            decision=decision,
            status=decision.status,
            promotion_type=PromotionType.AUTOMATIC if automatic else PromotionType.MANUAL,
            created_at=now,
        )
        if automatic:
            record.approved_by = SYSTEM_APPROVER
            record.approved_at = now

        await self._promotions.save_promotion(record)
        logger.info(
            "promotion_recorded",
            promotion_id=record.promotion_id,
            student_id=record.student_id,
            curriculum=record.curriculum,
            from_level=record.from_level,
            to_level=record.to_level,
            status=record.status.value,
            confidence=record.confidence,
        )

        if automatic:
            await self._execute(record)
        return record

    async def approve(
        self, promotion_id: str, trainer_id: str, notes: str | None = None
    ) -> PromotionRecord:
        """Approve a pending promotion and apply the level change.

        Raises:
            NotFoundError: Unknown promotion
            InvalidStateError: Record is not pending
        """
        record = await self._load_pending(promotion_id)
        record.status = PromotionStatus.APPROVED
        record.approved_by = trainer_id
        record.approved_at = self._clock()
        record.trainer_notes = notes
        await self._promotions.save_promotion(record)
        logger.info(
            "promotion_approved",
            promotion_id=promotion_id,
            trainer_id=trainer_id,
            student_id=record.student_id,
        )
        await self._execute(record)
        return record

    async def reject(
        self, promotion_id: str, trainer_id: str, reason: str | None = None
    ) -> PromotionRecord:
        """Reject a pending promotion.

        Raises:
            NotFoundError: Unknown promotion
            InvalidStateError: Record is not pending
        """
        record = await self._load_pending(promotion_id)
        record.status = PromotionStatus.REJECTED
        record.rejected_by = trainer_id
        record.rejected_at = self._clock()
        record.rejection_reason = reason
        await self._promotions.save_promotion(record)
        logger.info(
            "promotion_rejected",
            promotion_id=promotion_id,
            trainer_id=trainer_id,
            student_id=record.student_id,
            reason=reason,
        )
        return record

    async def pending(self, curriculum: str | None = None) -> list[PromotionRecord]:
        return await self._promotions.list_promotions(
            status=PromotionStatus.PENDING.value, curriculum=curriculum
        )

    async def history(
        self, student_id: str, curriculum: str | None = None
    ) -> list[PromotionRecord]:
        return await self._promotions.list_promotions(
            student_id=student_id, curriculum=curriculum
        )

    async def statistics(self, days: int = 30, curriculum: str | None = None) -> dict[str, Any]:
        """Aggregate promotion counts over the last `days` days."""
        since = self._clock() - timedelta(days=days)
        records = [
            r
            for r in await self._promotions.list_promotions(curriculum=curriculum)
            if r.created_at >= since
        ]
        by_status = Counter(r.status.value for r in records)
        total = len(records)
        return {
            "period_days": days,
            "total": total,
            "by_status": {status.value: by_status.get(status.value, 0) for status in PromotionStatus},
            "average_confidence": (
                round(sum(r.confidence for r in records) / total, 1) if total else 0.0
            ),
            "auto_approval_rate": (
                round(by_status.get(PromotionStatus.AUTO_APPROVED.value, 0) / total * 100, 1)
                if total
                else 0.0
            ),
            "by_curriculum": dict(Counter(r.curriculum for r in records)),
            "by_transition": dict(Counter(f"{r.from_level}->{r.to_level}" for r in records)),
        }

    # -------------------------------------------------------------------------

    async def _current_level(self, student_id: str, curriculum: str) -> str:
        user = await self._directory.get_user(student_id)
        if user is None or user.role != "student":
            raise NotFoundError("student", student_id)
        level = user.current_levels.get(curriculum)
        if level:
            return level
        progression = self._criteria().progression(curriculum)
        if not progression:
            raise NotFoundError("curriculum", curriculum)
        return progression[0]

    async def _load_pending(self, promotion_id: str) -> PromotionRecord:
        record = await self._promotions.load_promotion(promotion_id)
        if record is None:
            raise NotFoundError("promotion", promotion_id)
        if record.status != PromotionStatus.PENDING:
            raise InvalidStateError(
                f"Promotion '{promotion_id}' is {record.status.value}, not pending"
            )
        return record

    async def _execute(self, record: PromotionRecord) -> None:
        """Apply the level change, then notify the adaptive profile store."""
        if record.to_level is None:
            raise InvalidStateError(f"Promotion '{record.promotion_id}' has no target level")

        old_level = await self._directory.set_current_level(
            record.student_id, record.curriculum, record.to_level, record.promotion_id
        )
        record.executed_at = self._clock()
        await self._promotions.save_promotion(record)
        logger.info(
            "promotion_executed",
            promotion_id=record.promotion_id,
            student_id=record.student_id,
            curriculum=record.curriculum,
            old_level=old_level,
            new_level=record.to_level,
        )

        try:
            await self._adaptive.record_promotion(
                record.student_id,
                record.curriculum,
                record.from_level,
                record.to_level,
                record.confidence,
            )
        except Exception as e:
            logger.warning(
                "side_effect_failed",
                effect="adaptive_promotion",
                promotion_id=record.promotion_id,
                error=str(e),
            )
