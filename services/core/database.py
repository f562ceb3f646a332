"""
Database Configuration Module
Async engine + session factory, passed explicitly to whoever needs them
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

import governance_config

# Base for models
Base = declarative_base()


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create an async engine.

    In-memory SQLite gets a StaticPool so every session sees the same
    database; server databases get pre-ping + recycling.
    """
    url = url or governance_config.get_database_url()
    echo = governance_config.DB_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        if ":memory:" in url or url.rstrip("/").endswith("://"):
            engine = create_async_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_async_engine(url, echo=echo)
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,              # Verify connections before use
        pool_recycle=3600,               # Recycle connections after 1 hour
    )


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    - The sqlite driver defers BEGIN on its own, which breaks SAVEPOINT
      (begin_nested). Let SQLAlchemy emit BEGIN instead.
    - SQLite ignores foreign keys unless asked per connection; enforce
      them like Postgres does.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to one engine"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create all tables.

    Idempotent: existing tables are left as they are.
    """
    import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections(engine: AsyncEngine) -> None:
    """
    Gracefully close all database connections.
    Call this on application shutdown.
    """
    await engine.dispose()
