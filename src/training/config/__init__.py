"""Configuration package for the training system."""

from training.config.app_config import (
    AppConfig,
    AssessmentConfig,
    LifecycleConfig,
    PromotionConfig,
    TierThresholds,
    load_app_config,
)
from training.config.criteria import (
    CriteriaNotFoundError,
    CriteriaTable,
    PromotionCriteria,
    load_criteria_table,
)

__all__ = [
    "AppConfig",
    "AssessmentConfig",
    "LifecycleConfig",
    "PromotionConfig",
    "TierThresholds",
    "load_app_config",
    "CriteriaNotFoundError",
    "CriteriaTable",
    "PromotionCriteria",
    "load_criteria_table",
]
