"""Promotion evaluation.

Decides whether a student should advance to the next level of a
curriculum, given the most recent sessions at the current level
(newest first) and the criteria table.

Steps:
1. Gatekeeping on the number of sessions at the level
2. Aggregate performance (averages, consistency, successful streak)
3. Criteria evaluation (all must be met)
4. Confidence score (0-100)
5. Next level lookup

Every decision carries the frozen criteria it was evaluated against, so
later table edits never change historical decisions.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

import structlog

from training.config.criteria import CriteriaNotFoundError, CriteriaTable, PromotionCriteria
from training.core.models import TrainingSession, utcnow
from training.core.scorer import mean, population_stddev

logger = structlog.get_logger(__name__)

# Ratio cap applied to each confidence term before weighting
RATIO_CAP = 1.2

# =============================================================================
# TYPES
# =============================================================================


class PromotionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


@dataclass(frozen=True)
class PromotionWeights:
    """Confidence weights. Must sum to 1.0."""

    accuracy: float = 0.35
    speed: float = 0.25
    consistency: float = 0.20
    improvement: float = 0.15
    session_count: float = 0.05

    def __post_init__(self):
        total = (
            self.accuracy + self.speed + self.consistency + self.improvement + self.session_count
        )
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Promotion weights must sum to 1.0, got {total}")


DEFAULT_PROMOTION_WEIGHTS = PromotionWeights()


@dataclass
class CriterionCheck:
    """Audit record for one criterion."""

    name: str
    met: bool
    measured: float
    required: float


@dataclass
class PerformanceAggregate:
    total_sessions: int
    average_accuracy: float
    average_time: float
    consistency_score: float
    successful_sessions: int
    success_rate: float
    improvement_trend: float
    consecutive_successful: int


@dataclass
class PromotionDecision:
    """Outcome of one promotion evaluation."""

    decision_id: str
    student_id: str
    curriculum: str
    from_level: str
    to_level: str | None
    eligible: bool
    confidence: int
    status: PromotionStatus | None
    criteria: PromotionCriteria | None
    checks: list[CriterionCheck] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    recommendation: str = ""
    performance: PerformanceAggregate | None = None
    session_ids: list[str] = field(default_factory=list)
    evaluated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "decision_id": self.decision_id,
            "student_id": self.student_id,
            "curriculum": self.curriculum,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "eligible": self.eligible,
            "confidence": self.confidence,
            "status": self.status.value if self.status else None,
            "criteria": self.criteria.to_dict() if self.criteria else None,
            "checks": [asdict(c) for c in self.checks],
            "reasons": list(self.reasons),
            "recommendation": self.recommendation,
            "performance": asdict(self.performance) if self.performance else None,
            "session_ids": list(self.session_ids),
            "evaluated_at": self.evaluated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromotionDecision:
        criteria = data.get("criteria")
        performance = data.get("performance")
        status = data.get("status")
        return cls(
            decision_id=data["decision_id"],
            student_id=data["student_id"],
            curriculum=data["curriculum"],
            from_level=data["from_level"],
            to_level=data.get("to_level"),
            eligible=bool(data["eligible"]),
            confidence=int(data["confidence"]),
            status=PromotionStatus(status) if status else None,
            criteria=PromotionCriteria(**criteria) if criteria else None,
            checks=[CriterionCheck(**c) for c in data.get("checks", [])],
            reasons=list(data.get("reasons", [])),
            recommendation=data.get("recommendation", ""),
            performance=PerformanceAggregate(**performance) if performance else None,
            session_ids=list(data.get("session_ids", [])),
            evaluated_at=datetime.fromisoformat(data["evaluated_at"]),
        )


# =============================================================================
# AGGREGATION
# =============================================================================


def meets_thresholds(session: TrainingSession, criteria: PromotionCriteria) -> bool:
    """A session is successful if it meets both accuracy and time individually."""
    return (
        session.accuracy >= criteria.minimum_accuracy
        and session.average_time_per_question <= criteria.maximum_average_time
    )


def consecutive_successful(
    sessions: Sequence[TrainingSession], criteria: PromotionCriteria
) -> int:
    """Length of the successful streak counted from the newest session."""
    count = 0
    for session in sessions:
        if not meets_thresholds(session, criteria):
            break
        count += 1
    return count


def improvement_trend(sessions: Sequence[TrainingSession]) -> float:
    """Newer-half vs older-half accuracy change, normalized to [-1, 1].

    Sessions are newest first; fewer than three gives 0.
    """
    if len(sessions) < 3:
        return 0.0
    mid = len(sessions) // 2
    newer = [s.accuracy for s in sessions[:mid]]
    older = [s.accuracy for s in sessions[mid:]]
    change = (mean(newer) - mean(older)) / 100
    return max(-1.0, min(1.0, change))


def aggregate_performance(
    sessions: Sequence[TrainingSession], criteria: PromotionCriteria
) -> PerformanceAggregate:
    accuracies = [s.accuracy for s in sessions]
    successful = sum(1 for s in sessions if meets_thresholds(s, criteria))
    return PerformanceAggregate(
        total_sessions=len(sessions),
        average_accuracy=round(mean(accuracies), 2),
        average_time=round(mean([s.average_time_per_question for s in sessions]), 2),
        consistency_score=round(max(0.0, 100 - 2 * population_stddev(accuracies)), 2),
        successful_sessions=successful,
        success_rate=round(successful / len(sessions) * 100) if sessions else 0,
        improvement_trend=improvement_trend(sessions),
        consecutive_successful=consecutive_successful(sessions, criteria),
    )


# =============================================================================
# CRITERIA & CONFIDENCE
# =============================================================================


def evaluate_criteria(
    performance: PerformanceAggregate, criteria: PromotionCriteria
) -> tuple[list[CriterionCheck], list[str]]:
    """Check each criterion; return audit checks and unmet reasons."""
    checks = [
        CriterionCheck(
            name="accuracy",
            met=performance.average_accuracy >= criteria.minimum_accuracy,
            measured=performance.average_accuracy,
            required=criteria.minimum_accuracy,
        ),
        CriterionCheck(
            name="speed",
            met=performance.average_time <= criteria.maximum_average_time,
            measured=performance.average_time,
            required=criteria.maximum_average_time,
        ),
        CriterionCheck(
            name="consistency",
            met=performance.consistency_score >= criteria.consistency_threshold,
            measured=performance.consistency_score,
            required=criteria.consistency_threshold,
        ),
        CriterionCheck(
            name="successful_sessions",
            met=performance.consecutive_successful >= criteria.required_successful_sessions,
            measured=performance.consecutive_successful,
            required=criteria.required_successful_sessions,
        ),
    ]

    messages = {
        "accuracy": "accuracy {measured}% is below the required {required}%",
        "speed": "average time {measured}s is above the allowed {required}s",
        "consistency": "consistency {measured}% is below the required {required}%",
        "successful_sessions": "{measured} consecutive successful sessions of {required} required",
    }
    reasons = [
        messages[check.name].format(measured=check.measured, required=check.required)
        for check in checks
        if not check.met
    ]
    return checks, reasons


def _capped_ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return RATIO_CAP
    return min(numerator / denominator, RATIO_CAP)


def calculate_confidence(
    performance: PerformanceAggregate,
    criteria: PromotionCriteria,
    weights: PromotionWeights = DEFAULT_PROMOTION_WEIGHTS,
) -> int:
    """Weighted 0-100 measure of how far performance exceeds the criteria."""
    accuracy_ratio = _capped_ratio(performance.average_accuracy, criteria.minimum_accuracy)
    speed_ratio = _capped_ratio(criteria.maximum_average_time, performance.average_time)
    consistency_ratio = _capped_ratio(
        performance.consistency_score, criteria.consistency_threshold
    )
    improvement = max(0.0, min(performance.improvement_trend, 1.0))
    session_ratio = _capped_ratio(
        performance.total_sessions, criteria.minimum_sessions_at_level
    )

    confidence = (
        accuracy_ratio * weights.accuracy
        + speed_ratio * weights.speed
        + consistency_ratio * weights.consistency
        + improvement * weights.improvement
        + session_ratio * weights.session_count
    ) * 100
    return int(max(0, min(round(confidence), 100)))


def recommendation_for(eligible: bool, confidence: int, reasons: list[str]) -> str:
    if eligible and confidence >= 90:
        return "Promote now: excellent performance"
    if eligible and confidence >= 75:
        return "Promote with review: good performance"
    if eligible:
        return "Promote with additional follow-up"
    return "Needs improvement: " + "; ".join(reasons)


# =============================================================================
# EVALUATION
# =============================================================================


def evaluate_promotion(
    student_id: str,
    curriculum: str,
    level: str,
    sessions: Sequence[TrainingSession],
    table: CriteriaTable,
    auto_approval_confidence: int = 85,
    weights: PromotionWeights = DEFAULT_PROMOTION_WEIGHTS,
) -> PromotionDecision:
    """Evaluate promotion eligibility for a student at a level.

    Args:
        student_id: Student being evaluated
        curriculum: Curriculum value (e.g. "abacus")
        level: Current level within the curriculum
        sessions: Recent completed sessions at this level, newest first
        table: Criteria table to snapshot from
        auto_approval_confidence: Confidence at or above which eligible
            decisions are auto-approved
        weights: Confidence weights

    Returns:
        PromotionDecision (status is None when not eligible)
    """
    decision = PromotionDecision(
        decision_id=f"prom-{uuid.uuid4().hex[:12]}",
        student_id=student_id,
        curriculum=curriculum,
        from_level=level,
        to_level=None,
        eligible=False,
        confidence=0,
        status=None,
        criteria=None,
        session_ids=[s.session_id for s in sessions],
    )

    try:
        criteria = table.get(curriculum, level)
    except CriteriaNotFoundError:
        decision.reasons = [f"no promotion criteria defined for {curriculum}/{level}"]
        decision.recommendation = recommendation_for(False, 0, decision.reasons)
        return decision

    decision.criteria = criteria

    if len(sessions) < criteria.minimum_sessions_at_level:
        decision.reasons = [
            f"needs at least {criteria.minimum_sessions_at_level} sessions at this level, "
            f"has {len(sessions)}"
        ]
        decision.recommendation = recommendation_for(False, 0, decision.reasons)
        logger.debug(
            "promotion_gatekept",
            student_id=student_id,
            curriculum=curriculum,
            level=level,
            sessions=len(sessions),
            required=criteria.minimum_sessions_at_level,
        )
        return decision

    performance = aggregate_performance(sessions, criteria)
    checks, reasons = evaluate_criteria(performance, criteria)
    confidence = calculate_confidence(performance, criteria, weights)
    to_level = table.next_level(curriculum, level)
    if to_level is None:
        reasons.append(f"no level above {level} in {curriculum}")

    eligible = not reasons
    if eligible:
        status = (
            PromotionStatus.AUTO_APPROVED
            if confidence >= auto_approval_confidence
            else PromotionStatus.PENDING
        )
    else:
        status = None

    decision.performance = performance
    decision.checks = checks
    decision.reasons = reasons
    decision.confidence = confidence
    decision.to_level = to_level
    decision.eligible = eligible
    decision.status = status
    decision.recommendation = recommendation_for(eligible, confidence, reasons)

    logger.info(
        "promotion_evaluated",
        student_id=student_id,
        curriculum=curriculum,
        level=level,
        eligible=eligible,
        confidence=confidence,
        next_level=to_level,
    )
    return decision
