"""Promotion criteria loader.

Loads per-curriculum, per-level promotion criteria and level progressions
from data/config/criteria_v1.yaml.

The loaded table is immutable. Administrative edits go through
replace_criteria_table(), which swaps the whole table; decisions already
computed keep the frozen PromotionCriteria they were evaluated against.

Usage:
    from training.config.criteria import load_criteria_table

    table = load_criteria_table()
    criteria = table.get("abacus", "beginner")
    upcoming = table.next_level("abacus", "beginner")  # "elementary"
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import structlog
import yaml

from training.core.errors import NotFoundError

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CRITERIA_FILE = Path("data/config/criteria_v1.yaml")


class CriteriaNotFoundError(NotFoundError):
    """No criteria defined for a curriculum/level pair."""

    def __init__(self, curriculum: str, level: str):
        self.curriculum = curriculum
        self.level = level
        super().__init__("criteria", f"{curriculum}/{level}")


@dataclass(frozen=True)
class PromotionCriteria:
    """Thresholds a student must meet to leave a level."""

    minimum_accuracy: float
    maximum_average_time: float
    required_successful_sessions: int
    minimum_sessions_at_level: int
    consistency_threshold: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CriteriaTable:
    """Immutable curriculum -> level -> criteria mapping plus progressions."""

    def __init__(
        self,
        criteria: Mapping[str, Mapping[str, PromotionCriteria]],
        progressions: Mapping[str, list[str]],
    ):
        self._criteria = MappingProxyType(
            {c: MappingProxyType(dict(levels)) for c, levels in criteria.items()}
        )
        self._progressions = MappingProxyType(
            {c: tuple(levels) for c, levels in progressions.items()}
        )

    @property
    def curricula(self) -> list[str]:
        return sorted(set(self._criteria) | set(self._progressions))

    def get(self, curriculum: str, level: str) -> PromotionCriteria:
        """Return criteria for a level.

        Raises:
            CriteriaNotFoundError: If the curriculum or level has no entry
        """
        levels = self._criteria.get(curriculum)
        if levels is None or level not in levels:
            raise CriteriaNotFoundError(curriculum, level)
        return levels[level]

    def levels(self, curriculum: str) -> Mapping[str, PromotionCriteria]:
        return self._criteria.get(curriculum, MappingProxyType({}))

    def progression(self, curriculum: str) -> tuple[str, ...]:
        return self._progressions.get(curriculum, ())

    def next_level(self, curriculum: str, level: str) -> str | None:
        """Level right after `level`, or None at the top or for unknown levels."""
        progression = self.progression(curriculum)
        if level not in progression:
            return None
        index = progression.index(level)
        if index == len(progression) - 1:
            return None
        return progression[index + 1]


# Module-level cache
_cached_table: CriteriaTable | None = None


def _get_defaults() -> dict[str, Any]:
    """Default criteria when the config file is missing."""

    def level(acc, time, required, minimum, consistency):
        return {
            "minimum_accuracy": acc,
            "maximum_average_time": time,
            "required_successful_sessions": required,
            "minimum_sessions_at_level": minimum,
            "consistency_threshold": consistency,
        }

    return {
        "criteria": {
            "abacus": {
                "beginner": level(80, 8, 3, 5, 75),
                "elementary": level(85, 6, 4, 6, 80),
                "intermediate": level(90, 5, 5, 8, 85),
                "advanced": level(95, 4, 6, 10, 90),
            },
            "vedic": {
                "beginner": level(75, 10, 3, 5, 70),
                "elementary": level(80, 8, 4, 6, 75),
                "intermediate": level(85, 6, 5, 8, 80),
                "advanced": level(90, 5, 6, 10, 85),
            },
            "logic": {
                "grade1-2": level(70, 15, 3, 4, 65),
                "grade3-4": level(75, 12, 4, 5, 70),
                "grade5-6": level(80, 10, 4, 6, 75),
                "grade7-8": level(85, 8, 5, 7, 80),
            },
            "iq_games": {
                "easy": level(70, 20, 3, 4, 65),
                "medium": level(75, 15, 4, 5, 70),
                "hard": level(80, 12, 5, 6, 75),
                "expert": level(85, 10, 6, 8, 80),
            },
        },
        "progressions": {
            "abacus": ["beginner", "elementary", "intermediate", "advanced", "expert"],
            "vedic": ["beginner", "elementary", "intermediate", "advanced", "expert"],
            "logic": ["grade1-2", "grade3-4", "grade5-6", "grade7-8", "grade9-10"],
            "iq_games": ["easy", "medium", "hard", "expert", "master"],
        },
    }


def parse_criteria_table(data: dict[str, Any]) -> CriteriaTable:
    """Build a CriteriaTable from its YAML/dict form."""
    criteria = {}
    for curriculum, levels in (data.get("criteria") or {}).items():
        criteria[curriculum] = {
            name: PromotionCriteria(
                minimum_accuracy=float(values["minimum_accuracy"]),
                maximum_average_time=float(values["maximum_average_time"]),
                required_successful_sessions=int(values["required_successful_sessions"]),
                minimum_sessions_at_level=int(values["minimum_sessions_at_level"]),
                consistency_threshold=float(values["consistency_threshold"]),
            )
            for name, values in levels.items()
        }
    progressions = {
        curriculum: [str(level) for level in levels]
        for curriculum, levels in (data.get("progressions") or {}).items()
    }
    return CriteriaTable(criteria, progressions)


def load_criteria_table(force_reload: bool = False) -> CriteriaTable:
    """Load the criteria table from config file.

    Args:
        force_reload: If True, ignore cache and reload from file.

    Returns:
        The immutable CriteriaTable.
    """
    global _cached_table

    if _cached_table is not None and not force_reload:
        return _cached_table

    if not CRITERIA_FILE.exists():
        logger.warning("criteria_file_not_found", path=str(CRITERIA_FILE))
        _cached_table = parse_criteria_table(_get_defaults())
        return _cached_table

    data = yaml.safe_load(CRITERIA_FILE.read_text(encoding="utf-8")) or {}
    _cached_table = parse_criteria_table(data)
    logger.debug(
        "criteria_loaded", path=str(CRITERIA_FILE), curricula=_cached_table.curricula
    )
    return _cached_table


def replace_criteria_table(table: CriteriaTable) -> None:
    """Install an administratively updated table for future evaluations."""
    global _cached_table
    _cached_table = table
    logger.info("criteria_table_replaced", curricula=table.curricula)


def clear_criteria_cache() -> None:
    """Clear the criteria cache (for testing)."""
    global _cached_table
    _cached_table = None
