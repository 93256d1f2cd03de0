"""Wiring of the training services for the Web API.

Builds the session manager, promotion service and notification channel
over the SQLite adapters and the file exercise bank, and keeps them as a
process-wide instance.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from training.config.app_config import AppConfig, load_app_config
from training.core.exercise_bank import FileExerciseGenerator
from training.core.notifications import QueueNotificationChannel
from training.core.promotion_service import PromotionService
from training.core.session_manager import SessionManager
from training.db.adaptive_repository import SqliteAdaptiveProfileStore
from training.db.database import init_db
from training.db.promotion_repository import SqlitePromotionStore
from training.db.session_repository import SqliteSessionStore
from training.db.users_repository import SqliteUserDirectory

logger = structlog.get_logger(__name__)


@dataclass
class TrainingServices:
    """Everything the routes need."""

    manager: SessionManager
    promotions: PromotionService
    notifications: QueueNotificationChannel
    config: AppConfig


def build_services(config: AppConfig | None = None) -> TrainingServices:
    """Build services over the default SQLite and file-bank adapters."""
    config = config or load_app_config()
    init_db(config.db_path)

    store = SqliteSessionStore()
    directory = SqliteUserDirectory()
    adaptive = SqliteAdaptiveProfileStore()
    notifications = QueueNotificationChannel()
    promotions = PromotionService(
        sessions=store,
        promotions=SqlitePromotionStore(),
        directory=directory,
        adaptive=adaptive,
        config=config.promotion,
    )
    manager = SessionManager(
        generator=FileExerciseGenerator(config.exercises_dir, config.lifecycle),
        store=store,
        directory=directory,
        notifications=notifications,
        adaptive=adaptive,
        promotions=promotions,
        config=config,
    )
    logger.info(
        "services_built",
        db_path=str(config.db_path),
        exercises_dir=str(config.exercises_dir),
    )
    return TrainingServices(
        manager=manager, promotions=promotions, notifications=notifications, config=config
    )


# Global services instance
_services: TrainingServices | None = None


def get_services() -> TrainingServices:
    """Get the global services instance, building it on first use."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: TrainingServices) -> None:
    """Install a services instance (for testing or embedding)."""
    global _services
    _services = services


def reset_services() -> None:
    """Reset the services (for testing)."""
    global _services
    _services = None


def get_session_manager() -> SessionManager:
    return get_services().manager


def get_promotion_service() -> PromotionService:
    return get_services().promotions


def get_notification_channel() -> QueueNotificationChannel:
    return get_services().notifications
