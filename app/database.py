"""Database configuration and connection management."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings

# Isolation level requested by the booking transaction
SERIALIZABLE = "SERIALIZABLE"


def configure_sqlite_engine(engine: AsyncEngine) -> None:
    """
    Take over transaction control from the sqlite driver.

    pysqlite/aiosqlite defer BEGIN until the first write, which would let two
    booking transactions read the same snapshot before either takes the write
    lock. Serializable connections begin with BEGIN IMMEDIATE instead so the
    overlap read and the insert happen under one reserved lock.

    File databases run in WAL mode so an idle reader never blocks that commit.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn: Connection) -> None:
        if conn.get_execution_options().get("isolation_level") == SERIALIZABLE:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine, applying the sqlite transaction recipe when needed."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        # Seconds a writer waits on a held lock before the driver raises "database is locked"
        connect_args.setdefault("timeout", 30)
        new_engine = create_async_engine(url, connect_args=connect_args, **kwargs)
        configure_sqlite_engine(new_engine)
        return new_engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def _engine_options() -> dict[str, Any]:
    if settings.async_database_url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": settings.app_name,
            },
        },
    }


# Create async engine with connection pooling
engine: AsyncEngine = build_engine(settings.async_database_url, **_engine_options())

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for services that open their own transactions."""
    return AsyncSessionLocal


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
