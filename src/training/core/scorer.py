"""Performance scoring.

Responsibilities:
- Turn a completed session into per-axis scores, an overall score and a
  letter grade
- Identify strengths and weaknesses by exercise type
- Analyze per-exercise timing (spread, consistency, trend) and error
  clusters
- Compare against a short history of prior sessions at the same level

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any

from training.config.app_config import AssessmentConfig, TierThresholds
from training.core.models import Exercise, TrainingSession

# =============================================================================
# WEIGHTS
# =============================================================================


@dataclass(frozen=True)
class ScoreWeights:
    """Overall-score weights. Must sum to 1.0."""

    accuracy: float = 0.4
    speed: float = 0.3
    completion: float = 0.2
    consistency: float = 0.1

    def __post_init__(self):
        total = self.accuracy + self.speed + self.completion + self.consistency
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Score weights must sum to 1.0, got {total}")

    def without_consistency(self) -> ScoreWeights:
        """Redistribute the consistency share proportionally over the other axes."""
        remaining = self.accuracy + self.speed + self.completion
        return ScoreWeights(
            accuracy=self.accuracy / remaining,
            speed=self.speed / remaining,
            completion=self.completion / remaining,
            consistency=0.0,
        )


DEFAULT_WEIGHTS = ScoreWeights()

GRADE_BANDS: tuple[tuple[float, str], ...] = (
    (95, "A+"),
    (90, "A"),
    (85, "B+"),
    (80, "B"),
    (75, "C+"),
    (70, "C"),
    (65, "D+"),
    (60, "D"),
)

LEVEL_BANDS: tuple[tuple[float, str], ...] = (
    (90, "excellent"),
    (80, "very_good"),
    (70, "good"),
    (60, "acceptable"),
)

# Time trend classification threshold (seconds)
TREND_THRESHOLD = 1.0

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class AxisScores:
    accuracy: float
    speed: float
    completion: float
    consistency: float | None
    overall: float


@dataclass
class PerformanceSummary:
    accuracy: float
    completion_rate: float
    error_rate: float
    average_time: float
    total_duration: float
    scores: AxisScores
    grade: str
    level: str


@dataclass
class Finding:
    """A strength or weakness."""

    area: str
    value: float
    description: str
    average_time: float | None = None
    error_count: int | None = None
    suggestions: list[str] = field(default_factory=list)


@dataclass
class TimeAnalysis:
    average_time: float
    min_time: float
    max_time: float
    standard_deviation: float
    consistent: bool
    trend: str  # improving | declining | stable | insufficient_data
    distribution: dict[str, float]
    recommendations: list[str] = field(default_factory=list)


@dataclass
class ErrorPattern:
    exercise_type: str
    count: int
    percentage: float
    average_time: float


@dataclass
class ErrorAnalysis:
    total_errors: int
    error_rate: float
    patterns: list[ErrorPattern]
    most_problematic_area: str | None
    recommendations: list[str] = field(default_factory=list)


@dataclass
class HistoryComparison:
    previous_sessions: int
    current_accuracy: float
    previous_accuracy: float
    accuracy_delta: float
    accuracy_trend: str
    current_time: float
    previous_time: float
    # positive means faster than before
    time_delta: float
    time_trend: str
    overall_trend: str


@dataclass
class AssessmentResult:
    """Full analysis of one completed session."""

    session_id: str
    student_id: str
    curriculum: str
    level: str
    performance: PerformanceSummary
    strengths: list[Finding]
    weaknesses: list[Finding]
    recommendations: list[str]
    time_analysis: TimeAnalysis | None
    error_analysis: ErrorAnalysis
    comparison: HistoryComparison | None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


# =============================================================================
# STATISTICS HELPERS
# =============================================================================


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def population_stddev(values: list[float]) -> float:
    """Population standard deviation (0 for fewer than two values)."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


def _round(value: float) -> float:
    return round(value, 2)


def _percentile(sorted_values: list[float], fraction: float) -> float:
    return sorted_values[min(int(len(sorted_values) * fraction), len(sorted_values) - 1)]


def time_distribution(times: list[float]) -> dict[str, float]:
    """Min, max, median and quartiles of a list of times."""
    ordered = sorted(times)
    n = len(ordered)
    if n % 2 == 0:
        median = (ordered[n // 2 - 1] + ordered[n // 2]) / 2
    else:
        median = ordered[n // 2]
    return {
        "min": ordered[0],
        "max": ordered[-1],
        "median": median,
        "q1": _percentile(ordered, 0.25),
        "q3": _percentile(ordered, 0.75),
    }


def classify_time_trend(times: list[float]) -> str:
    """Compare first-half vs second-half average time (chronological order)."""
    if len(times) < 3:
        return "insufficient_data"
    mid = len(times) // 2
    delta = mean(times[:mid]) - mean(times[mid:])
    if delta > TREND_THRESHOLD:
        return "improving"
    if delta < -TREND_THRESHOLD:
        return "declining"
    return "stable"


# =============================================================================
# AXIS SCORES
# =============================================================================


def accuracy_score(accuracy: float, tiers: TierThresholds) -> float:
    if accuracy >= tiers.excellent:
        return 100.0
    if accuracy >= tiers.good:
        return 85.0
    if accuracy >= tiers.satisfactory:
        return 70.0
    if accuracy >= tiers.needs_improvement:
        return 50.0
    return float(min(max(accuracy, 0.0), 100.0))


def speed_score(average_time: float, tiers: TierThresholds) -> float:
    """Score seconds-per-question; slower than the worst tier keeps decaying."""
    if average_time <= tiers.excellent:
        return 100.0
    if average_time <= tiers.good:
        return 85.0
    if average_time <= tiers.satisfactory:
        return 70.0
    if average_time <= tiers.needs_improvement:
        return 50.0
    return float(max(50 - 2 * (average_time - tiers.needs_improvement), 0.0))


def completion_score(completion_rate: float) -> float:
    return float(min(max(completion_rate, 0.0), 100.0))


def consistency_score(accuracies: list[float]) -> float:
    """100 minus twice the spread of accuracy values, floored at 0."""
    return max(0.0, 100 - 2 * population_stddev(accuracies))


def letter_grade(score: float) -> str:
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return "F"


def performance_level(score: float) -> str:
    for threshold, label in LEVEL_BANDS:
        if score >= threshold:
            return label
    return "needs_improvement"


# =============================================================================
# ANALYSIS
# =============================================================================


def _group_by_type(exercises: list[Exercise]) -> dict[str, dict[str, float]]:
    groups: dict[str, dict[str, float]] = {}
    for exercise in exercises:
        if not exercise.is_answered:
            continue
        group = groups.setdefault(
            exercise.exercise_type,
            {"total": 0, "correct": 0, "errors": 0, "total_time": 0.0},
        )
        group["total"] += 1
        if exercise.is_correct:
            group["correct"] += 1
        else:
            group["errors"] += 1
        group["total_time"] += exercise.time_spent

    for group in groups.values():
        group["accuracy"] = group["correct"] / group["total"] * 100
        group["average_time"] = group["total_time"] / group["total"]
    return groups


def calculate_performance(
    session: TrainingSession,
    config: AssessmentConfig,
    history: list[TrainingSession] | None = None,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> PerformanceSummary:
    """Per-axis scores, overall score and grade for a session."""
    curriculum = session.curriculum.value
    total = session.total_questions
    error_rate = session.incorrect_answers / total * 100 if total else 0.0

    acc = accuracy_score(session.accuracy, config.accuracy_tiers(curriculum))
    if session.answered_count:
        spd = speed_score(session.average_time_per_question, config.speed_tiers(curriculum))
    else:
        spd = 0.0
    comp = completion_score(session.completion_rate)

    consistency = None
    if history:
        consistency = consistency_score([session.accuracy] + [s.accuracy for s in history])
        overall = (
            acc * weights.accuracy
            + spd * weights.speed
            + comp * weights.completion
            + consistency * weights.consistency
        )
    else:
        reduced = weights.without_consistency()
        overall = acc * reduced.accuracy + spd * reduced.speed + comp * reduced.completion

    overall = _round(overall)
    return PerformanceSummary(
        accuracy=_round(session.accuracy),
        completion_rate=_round(session.completion_rate),
        error_rate=_round(error_rate),
        average_time=_round(session.average_time_per_question),
        total_duration=session.actual_duration or 0.0,
        scores=AxisScores(
            accuracy=acc,
            speed=spd,
            completion=comp,
            consistency=_round(consistency) if consistency is not None else None,
            overall=overall,
        ),
        grade=letter_grade(overall),
        level=performance_level(overall),
    )


def identify_strengths(
    session: TrainingSession, config: AssessmentConfig
) -> list[Finding]:
    strengths = []
    for exercise_type, group in _group_by_type(session.exercises).items():
        if group["accuracy"] >= 85:
            strengths.append(
                Finding(
                    area=exercise_type,
                    value=_round(group["accuracy"]),
                    average_time=_round(group["average_time"]),
                    description=f"Strong performance in {exercise_type}",
                )
            )

    curriculum = session.curriculum.value
    if session.answered_count and (
        session.average_time_per_question <= config.speed_tiers(curriculum).good
    ):
        strengths.append(
            Finding(
                area="speed",
                value=_round(session.average_time_per_question),
                description="Fast solving speed",
            )
        )
    if session.answered_count and session.accuracy >= config.accuracy_tiers(curriculum).good:
        strengths.append(
            Finding(area="accuracy", value=_round(session.accuracy), description="High accuracy")
        )
    return strengths


def identify_weaknesses(
    session: TrainingSession, config: AssessmentConfig
) -> list[Finding]:
    weaknesses = []
    for exercise_type, group in _group_by_type(session.exercises).items():
        if group["accuracy"] < 70:
            weaknesses.append(
                Finding(
                    area=exercise_type,
                    value=_round(group["accuracy"]),
                    average_time=_round(group["average_time"]),
                    error_count=int(group["errors"]),
                    description=f"Needs improvement in {exercise_type}",
                    suggestions=[f"Extra practice on {exercise_type}"],
                )
            )

    curriculum = session.curriculum.value
    if session.average_time_per_question > config.speed_tiers(curriculum).needs_improvement:
        weaknesses.append(
            Finding(
                area="speed",
                value=_round(session.average_time_per_question),
                description="Solving speed needs work",
                suggestions=["Practice quick-calculation techniques", "Regular timed drills"],
            )
        )
    if session.answered_count and (
        session.accuracy < config.accuracy_tiers(curriculum).satisfactory
    ):
        weaknesses.append(
            Finding(
                area="accuracy",
                value=_round(session.accuracy),
                description="Accuracy needs work",
                suggestions=[
                    "Review the fundamentals",
                    "Slow down",
                    "Focus on understanding before speed",
                ],
            )
        )
    return weaknesses


def analyze_time(session: TrainingSession) -> TimeAnalysis | None:
    """Timing statistics over answered exercises, or None without data."""
    times = [ex.time_spent for ex in session.exercises if ex.is_answered and ex.time_spent > 0]
    if not times:
        return None

    average = mean(times)
    stddev = population_stddev(times)
    consistent = stddev < 0.3 * average
    trend = classify_time_trend(times)

    recommendations = []
    if average > 8:
        recommendations.append("Practice for speed")
    if not consistent:
        recommendations.append("Work on keeping a steady pace")

    return TimeAnalysis(
        average_time=_round(average),
        min_time=_round(min(times)),
        max_time=_round(max(times)),
        standard_deviation=_round(stddev),
        consistent=consistent,
        trend=trend,
        distribution=time_distribution(times),
        recommendations=recommendations,
    )


def analyze_errors(session: TrainingSession) -> ErrorAnalysis:
    """Cluster incorrect answers by exercise type."""
    incorrect = [ex for ex in session.exercises if ex.is_answered and ex.is_correct is False]
    total = session.total_questions
    if not incorrect:
        return ErrorAnalysis(total_errors=0, error_rate=0.0, patterns=[], most_problematic_area=None)

    by_type: dict[str, list[Exercise]] = {}
    for exercise in incorrect:
        by_type.setdefault(exercise.exercise_type, []).append(exercise)

    patterns = [
        ErrorPattern(
            exercise_type=exercise_type,
            count=len(errors),
            percentage=_round(len(errors) / len(incorrect) * 100),
            average_time=_round(mean([ex.time_spent for ex in errors])),
        )
        for exercise_type, errors in by_type.items()
    ]
    worst = max(patterns, key=lambda p: p.count)

    return ErrorAnalysis(
        total_errors=len(incorrect),
        error_rate=_round(len(incorrect) / total * 100) if total else 0.0,
        patterns=patterns,
        most_problematic_area=worst.exercise_type,
        recommendations=[
            "Review common mistakes",
            f"Extra exercises in {worst.exercise_type}",
        ],
    )


def _delta_trend(delta: float, positive: str, negative: str) -> str:
    if delta > 0:
        return positive
    if delta < 0:
        return negative
    return "stable"


def overall_trend(accuracy_delta: float, time_delta: float) -> str:
    if accuracy_delta > 0 and time_delta > 0:
        return "excellent_improvement"
    if accuracy_delta > 0 or time_delta > 0:
        return "improving"
    if accuracy_delta < 0 and time_delta < 0:
        return "needs_attention"
    return "stable"


def compare_with_history(
    session: TrainingSession, history: list[TrainingSession]
) -> HistoryComparison | None:
    """Compare against prior sessions (newest first, already truncated)."""
    if not history:
        return None
    previous_accuracy = mean([s.accuracy for s in history])
    previous_time = mean([s.average_time_per_question for s in history])
    accuracy_delta = session.accuracy - previous_accuracy
    time_delta = previous_time - session.average_time_per_question

    return HistoryComparison(
        previous_sessions=len(history),
        current_accuracy=_round(session.accuracy),
        previous_accuracy=_round(previous_accuracy),
        accuracy_delta=_round(accuracy_delta),
        accuracy_trend=_delta_trend(accuracy_delta, "improving", "declining"),
        current_time=_round(session.average_time_per_question),
        previous_time=_round(previous_time),
        time_delta=_round(time_delta),
        time_trend=_delta_trend(time_delta, "faster", "slower"),
        overall_trend=overall_trend(accuracy_delta, time_delta),
    )


def session_recommendations(session: TrainingSession) -> list[str]:
    recommendations = []
    if session.answered_count and session.accuracy < 70:
        recommendations.append("Focus on accuracy before speed")
    if session.average_time_per_question > 10:
        recommendations.append("Train quick-calculation techniques")
    return recommendations


def analyze_session(
    session: TrainingSession,
    history: list[TrainingSession] | None = None,
    config: AssessmentConfig | None = None,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
    history_window: int = 5,
) -> AssessmentResult:
    """Build the full assessment of a completed session.

    Args:
        session: The session to analyze
        history: Prior sessions at the same curriculum/level, newest first
        config: Tier tables (defaults when omitted)
        weights: Overall-score weights
        history_window: How many prior sessions to compare against

    Returns:
        AssessmentResult
    """
    config = config or AssessmentConfig()
    prior = [s for s in (history or []) if s.session_id != session.session_id][:history_window]

    return AssessmentResult(
        session_id=session.session_id,
        student_id=session.student_id,
        curriculum=session.curriculum.value,
        level=session.level,
        performance=calculate_performance(session, config, prior, weights),
        strengths=identify_strengths(session, config),
        weaknesses=identify_weaknesses(session, config),
        recommendations=session_recommendations(session),
        time_analysis=analyze_time(session),
        error_analysis=analyze_errors(session),
        comparison=compare_with_history(session, prior),
    )
