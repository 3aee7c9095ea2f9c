"""
Core pytest configuration for the whole test suite.

Only the shared database and logging setup lives here. Repository fixtures are
in tests/test_fixtures/repository_fixtures.py and imported at the bottom so
every test module can use them without importing.

Database selection:
  1. TEST_DATABASE_URL (e.g. a Postgres test database in CI)
  2. Settings.DATABASE_URL when TESTING=true and TEST_POSTGRES_DB is set
  3. in-memory SQLite through aiosqlite (default; no server needed)

Every test gets a freshly created schema, so tests never see each other's rows.
"""
import os
import logging
from typing import AsyncGenerator
from urllib.parse import urlparse

# Silence noisy third-party loggers before importing anything that configures them.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "asyncio",
    "aiosqlite",
    "passlib",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.pool import StaticPool

from userstore.config.settings import get_settings
from userstore.core.logging.builder import setup_logging
from userstore.database.session import create_database_engine, create_session_factory, reset_database

settings = get_settings()
logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the package's logging config once per session. pytest adds its
    capture handler back to the root logger for every test phase, so caplog
    keeps working after dictConfig replaced the root handlers.
    """
    setup_logging(settings)
    yield


def safe_log_db_url(db_url: str) -> str:
    """The URL without credentials, for logging."""
    parsed = urlparse(db_url)
    return f"{parsed.scheme}://{parsed.hostname or ''}:{parsed.port or ''}/{parsed.path.lstrip('/')}"


def get_test_database_url() -> str:
    if test_url := os.getenv("TEST_DATABASE_URL"):
        return test_url

    if settings.TESTING and settings.TEST_POSTGRES_DB:
        return settings.DATABASE_URL

    return "sqlite+aiosqlite://"


TEST_DATABASE_URL = get_test_database_url()
logger.info("tests.database_selected", extra={"url": safe_log_db_url(TEST_DATABASE_URL)})


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------

@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine with a freshly created schema.

    In-memory SQLite lives as long as its connection, so the engine keeps
    exactly one (StaticPool).
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_database_engine(url=TEST_DATABASE_URL, poolclass=StaticPool)
    else:
        engine = create_database_engine(url=TEST_DATABASE_URL)

    await reset_database(engine)

    yield engine

    await engine.dispose()


@pytest.fixture()
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    A session on the fresh schema.

    Repositories never commit; whatever a test writes is rolled back when the
    session closes, and the next test starts from a new schema anyway.
    """
    factory = create_session_factory(async_engine)
    async with factory() as session:
        yield session
        await session.rollback()


# Repository test fixtures
from userstore.tests.test_fixtures.repository_fixtures import (  # noqa: E402,F401
    hasher,
    base_repo,
    user_repository,
    conversation_repository,
    sample_user_data,
    create_user,
    created_user,
    multiple_users,
)
