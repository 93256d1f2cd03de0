"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Async store adapters for sessions, promotions, users and adaptive profiles
"""

from training.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
