"""
Configuration and fixtures for store of record integration tests.

Each test gets its own SQLite database file through aiosqlite.
"""

import pytest

from user_service.core.config import Settings
from user_service.core.database import DatabaseManager
from user_service.infrastructure.repositories.user_repository import (
    SqlAlchemyUserRepository,
)


@pytest.fixture
def sqlite_settings(tmp_path):
    """Settings pointing at a temporary SQLite file."""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'users.db'}",
        DATABASE_CREATE_TABLES=True,
    )


@pytest.fixture
async def database(sqlite_settings):
    """Initialized database manager, closed after the test."""
    manager = DatabaseManager(sqlite_settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def sql_store(database):
    """SQLAlchemy store of record over the temporary database."""
    return SqlAlchemyUserRepository(database.session_factory)
