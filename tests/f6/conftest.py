"""Fixtures for F6 tests - Web API and CLI."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from fakes import T0, build_session
from training.core.notifications import QueueNotificationChannel
from training.web.api import create_app
from training.web.sessions import TrainingServices, reset_services, set_services


@pytest.fixture
def notifications():
    """The web layer streams from a queue channel instead of recording."""
    return QueueNotificationChannel()


@pytest.fixture
def services(manager, promotion_service, notifications, app_config):
    app_config.lifecycle.cleanup_interval_seconds = 0
    services = TrainingServices(
        manager=manager,
        promotions=promotion_service,
        notifications=notifications,
        config=app_config,
    )
    set_services(services)
    yield services
    reset_services()


@pytest.fixture
def client(services):
    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def seed_history(session_store):
    """Store `count` successful abacus/beginner sessions for stu-1."""

    def seed(count=4, accuracy=95.0, average_time=4.0):
        for i in range(count):
            session = build_session(
                accuracy=accuracy,
                average_time=average_time,
                end_time=T0 - timedelta(hours=i + 1),
                session_id=f"hist-{i}",
            )
            session_store.sessions[session.session_id] = session

    return seed
