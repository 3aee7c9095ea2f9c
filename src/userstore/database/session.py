import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)

from userstore.config.settings import Settings
from userstore.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    pysqlite/aiosqlite manage BEGIN themselves and break SAVEPOINT; take over
    transaction control and turn foreign keys on for every connection.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_database_engine(settings: Settings | None = None, url: str | None = None, **kwargs) -> AsyncEngine:
    """
    Build the AsyncEngine.

    `url` overrides `settings.DATABASE_URL` (tests pass an in-memory SQLite URL).
    Extra keyword arguments go straight to create_async_engine().
    """
    if url is None:
        if settings is None:
            raise ValueError("create_database_engine() needs settings or an explicit url")
        url = settings.DATABASE_URL

    backend = make_url(url).get_backend_name()
    options = {
        "echo": settings.SQLALCHEMY_ECHO if settings else False,
        "pool_pre_ping": backend != "sqlite",   # connection health checks
    }
    options.update(kwargs)

    engine = create_async_engine(url, **options)
    if backend == "sqlite":
        _enable_sqlite_savepoints(engine)

    logger.info("database.engine_created", extra={"backend": backend, "driver": engine.dialect.driver})
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: returned entities stay readable after the caller commits
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def session_scope(factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session and make sure it is closed afterwards.

    Usage (e.g. as a web framework dependency):
        async for db in session_scope(factory):
            repo = UserRepository(db, hasher=hasher)
    """
    async with factory() as session:
        yield session


async def reset_database(engine: AsyncEngine) -> None:
    """Drop and recreate every table. Test helper, not a migration tool."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.warning("database.reset", extra={"tables": sorted(Base.metadata.tables)})
