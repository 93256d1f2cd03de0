"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults when the file is missing.

Usage:
    from training.config.app_config import load_app_config

    config = load_app_config()
    interval = config.lifecycle.auto_save_interval_seconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")


@dataclass(frozen=True)
class TierThresholds:
    """Four-tier threshold table (excellent, good, satisfactory, needs improvement)."""

    excellent: float
    good: float
    satisfactory: float
    needs_improvement: float


@dataclass
class LifecycleConfig:
    """Timing and sizing for live sessions."""

    auto_save_interval_seconds: float = 30.0
    inactive_threshold_seconds: float = 1800.0
    cleanup_interval_seconds: float = 300.0
    default_duration_minutes: dict[str, float] = field(
        default_factory=lambda: {"abacus": 30, "vedic": 45, "logic": 60, "iq_games": 40}
    )
    batch_sizes: dict[str, int] = field(
        default_factory=lambda: {"under_7": 10, "7_to_10": 15, "over_10": 20}
    )
    default_batch_size: int = 15
    completed_cache_size: int = 500

    def duration_for(self, curriculum: str) -> float:
        """Default duration budget in seconds for a curriculum."""
        return float(self.default_duration_minutes.get(curriculum, 30)) * 60

    def batch_size_for(self, age_group: str) -> int:
        return int(self.batch_sizes.get(age_group, self.default_batch_size))


@dataclass
class PromotionConfig:
    """Promotion evaluation knobs."""

    recent_window: int = 10
    auto_approval_confidence: int = 85
    history_window: int = 5


@dataclass
class AssessmentConfig:
    """Per-axis scoring tiers, optionally overridden per curriculum."""

    accuracy: TierThresholds = field(
        default_factory=lambda: TierThresholds(95, 85, 70, 50)
    )
    # seconds per question, lower is better
    speed: TierThresholds = field(default_factory=lambda: TierThresholds(3, 5, 8, 12))
    overrides: dict[str, dict[str, TierThresholds]] = field(default_factory=dict)

    def accuracy_tiers(self, curriculum: str | None = None) -> TierThresholds:
        return self.overrides.get(curriculum or "", {}).get("accuracy", self.accuracy)

    def speed_tiers(self, curriculum: str | None = None) -> TierThresholds:
        return self.overrides.get(curriculum or "", {}).get("speed", self.speed)


@dataclass
class AppConfig:
    """Application-wide configuration."""

    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    promotion: PromotionConfig = field(default_factory=PromotionConfig)
    assessment: AssessmentConfig = field(default_factory=AssessmentConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db_path", "db/training.db"))

    @property
    def exercises_dir(self) -> Path:
        return Path(self.paths.get("exercises_dir", "data/exercises"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "lifecycle": {
            "auto_save_interval_seconds": 30,
            "inactive_threshold_seconds": 1800,
            "cleanup_interval_seconds": 300,
            "default_duration_minutes": {
                "abacus": 30,
                "vedic": 45,
                "logic": 60,
                "iq_games": 40,
            },
            "batch_sizes": {"under_7": 10, "7_to_10": 15, "over_10": 20},
            "default_batch_size": 15,
            "completed_cache_size": 500,
        },
        "promotion": {
            "recent_window": 10,
            "auto_approval_confidence": 85,
            "history_window": 5,
        },
        "assessment": {
            "accuracy": [95, 85, 70, 50],
            "speed": [3, 5, 8, 12],
            "overrides": {},
        },
        "paths": {
            "db_path": "db/training.db",
            "exercises_dir": "data/exercises",
            "config_dir": "data/config",
        },
    }


def _parse_tiers(values: list[float] | dict[str, float]) -> TierThresholds:
    if isinstance(values, dict):
        return TierThresholds(
            excellent=values["excellent"],
            good=values["good"],
            satisfactory=values["satisfactory"],
            needs_improvement=values["needs_improvement"],
        )
    if len(values) != 4:
        raise ValueError(f"Tier table needs 4 thresholds, got {len(values)}")
    return TierThresholds(*values)


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    lifecycle_data = {**defaults["lifecycle"], **data.get("lifecycle", {})}
    lifecycle = LifecycleConfig(
        auto_save_interval_seconds=float(lifecycle_data["auto_save_interval_seconds"]),
        inactive_threshold_seconds=float(lifecycle_data["inactive_threshold_seconds"]),
        cleanup_interval_seconds=float(lifecycle_data["cleanup_interval_seconds"]),
        default_duration_minutes=dict(lifecycle_data["default_duration_minutes"]),
        batch_sizes=dict(lifecycle_data["batch_sizes"]),
        default_batch_size=int(lifecycle_data["default_batch_size"]),
        completed_cache_size=int(lifecycle_data["completed_cache_size"]),
    )

    promotion_data = {**defaults["promotion"], **data.get("promotion", {})}
    promotion = PromotionConfig(
        recent_window=int(promotion_data["recent_window"]),
        auto_approval_confidence=int(promotion_data["auto_approval_confidence"]),
        history_window=int(promotion_data["history_window"]),
    )

    assessment_data = {**defaults["assessment"], **data.get("assessment", {})}
    overrides = {
        curriculum: {axis: _parse_tiers(tiers) for axis, tiers in axes.items()}
        for curriculum, axes in (assessment_data.get("overrides") or {}).items()
    }
    assessment = AssessmentConfig(
        accuracy=_parse_tiers(assessment_data["accuracy"]),
        speed=_parse_tiers(assessment_data["speed"]),
        overrides=overrides,
    )

    paths = {**defaults["paths"], **data.get("paths", {})}

    return AppConfig(
        lifecycle=lifecycle, promotion=promotion, assessment=assessment, paths=paths
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
