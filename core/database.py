"""
Database session management with SQLAlchemy async
"""

from typing import AsyncGenerator
from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
from core.exceptions import DatabaseError
import logging

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    future=True
)

# Create session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with async_session_maker() as session:
        yield session


def dialect_insert(session: AsyncSession, table: Table):
    """
    Build a dialect-specific INSERT so callers can use ON CONFLICT clauses.

    Both PostgreSQL and SQLite expose on_conflict_do_nothing() and
    on_conflict_do_update() with the same signature.
    """
    dialect_name = session.bind.dialect.name

    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)

    raise DatabaseError(
        "Upsert is not supported for this database dialect",
        context={"dialect": dialect_name, "table_name": table.name}
    )
