"""Dialect-specific INSERT ... ON CONFLICT support.

PostgreSQL runs production; SQLite runs local development and tests. Both
dialects expose the same on_conflict_do_nothing / on_conflict_do_update API.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def conflict_insert(session: AsyncSession, model):
    """Build an INSERT statement supporting ON CONFLICT for the session's dialect.

    Args:
        session: Async session bound to an engine
        model: SQLModel table class

    Returns:
        Dialect-specific Insert construct
    """
    dialect_name = session.bind.dialect.name  # type: ignore[union-attr]
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT inserts are not supported for {dialect_name}")
