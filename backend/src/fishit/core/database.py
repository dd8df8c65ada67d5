"""Database session factory setup."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel


def create_engine(db_url: str, pool_size: int = 10) -> AsyncEngine:
    """Create async engine for PostgreSQL (psycopg) or SQLite (aiosqlite).

    Args:
        db_url: Connection URL (postgresql+psycopg://... or sqlite+aiosqlite:///...)
        pool_size: Maximum number of connections in the pool (ignored for SQLite)

    Returns:
        Async engine
    """
    if db_url.startswith("sqlite"):
        # SQLite pools are managed by the dialect
        return create_async_engine(db_url, echo=False)

    return create_async_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=0,  # No overflow beyond pool_size
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Don't log SQL queries (use structlog instead)
    )


def setup_db_session(db_url: str, pool_size: int = 10) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Database connection URL
        pool_size: Maximum number of connections in the pool (default: 10)

    Returns:
        Async session factory for creating database sessions
    """
    engine = create_engine(db_url, pool_size)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )

    return session_factory


def get_engine(session_factory: async_sessionmaker[AsyncSession]) -> AsyncEngine:
    """Return the engine a session factory is bound to."""
    return session_factory.kw["bind"]


async def create_tables(engine: AsyncEngine) -> None:
    """Create all SQLModel tables that do not exist yet.

    Used for local runs (DB_AUTO_CREATE=true) and tests. Production schemas are
    provisioned outside this service.
    """
    # Register entities with SQLModel metadata
    import fishit.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
