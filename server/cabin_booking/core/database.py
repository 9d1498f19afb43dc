"""Database configuration and async session management."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings


def _enable_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    SQLite has no row locks and ignores FOR UPDATE, so concurrent booking
    transactions are serialized at BEGIN instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine configured for the booking engine's locking model.

    Args:
        database_url: SQLAlchemy async database URL
        echo: Log emitted SQL

    Returns:
        AsyncEngine: Configured engine
    """
    if database_url.startswith("sqlite"):
        in_memory = ":memory:" in database_url
        engine = create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool if in_memory else None,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        )
        _enable_immediate_transactions(engine)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        isolation_level=settings.database_isolation_level,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Create async session factory
async_session_factory = build_session_factory(engine)

# Create declarative base for models
Base = declarative_base()


async def init_db(target: AsyncEngine | None = None) -> None:
    """Initialize the database by creating all tables."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(target: AsyncEngine | None = None) -> None:
    """Close database connections."""
    await (target or engine).dispose()


def bound_engine(session_factory: async_sessionmaker[AsyncSession]) -> AsyncEngine:
    """Engine a session factory is bound to, falling back to the module engine."""
    return session_factory.kw.get("bind") or engine
