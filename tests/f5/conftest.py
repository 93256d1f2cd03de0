"""Fixtures for F5 tests - SQLite persistence."""

import pytest

from training.db import database
from training.db.database import init_db
from training.db.users_repository import insert_user


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Fresh database in a temp dir; the module-level path is restored afterwards."""
    monkeypatch.setattr(database, "_db_path", None)
    path = tmp_path / "db" / "training.db"
    init_db(path)
    return path


@pytest.fixture
def seeded_users(db_path):
    """One student at abacus/beginner, one without levels, one trainer."""
    return {
        "student": insert_user("student", "S001", "Ana", {"abacus": "beginner"}, user_id="stu-1"),
        "new_student": insert_user("student", "S002", "Leo", user_id="stu-2"),
        "trainer": insert_user("trainer", "T001", "Marta", user_id="trn-1"),
    }
