"""
Pytest configuration and fixtures
"""

import os
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import Settings
from enrichment.controller import JobController
from models import Base, Book
from support import BOOK_ROWS, add_books, author_lines, edition_lines, write_dump
from typing import AsyncGenerator, Dict


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine (SQLite file per test unless TEST_DATABASE_URL is set)"""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'enrichment_test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Configuration, dumps and seed data
# ============================================================================

@pytest.fixture
def dump_dir(tmp_path):
    directory = tmp_path / "dumps"
    directory.mkdir()
    return directory


@pytest.fixture
def config(dump_dir):
    """Settings with tiny batches so every cadence fires on a ten-line dump"""
    return Settings(
        MAPPING_DUMP_PATH=str(dump_dir / "editions.txt"),
        REFERENCE_DUMP_PATH=str(dump_dir / "authors.txt"),
        WORKS_DUMP_PATH=None,
        MAPPING_BATCH_SIZE=3,
        CHECKPOINT_INTERVAL_LINES=4,
        LIVENESS_CHECK_LINES=2,
        UPDATE_BATCH_SIZE=2,
        SKIP_MAPPING_WHEN_POPULATED=False,
        CLEAR_CHECKPOINT_ON_COMPLETE=True,
    )


@pytest_asyncio.fixture
async def library(config, db_session) -> Dict[str, int]:
    """Write both dumps and seed the books table. Returns {title: book id}."""
    write_dump(config.MAPPING_DUMP_PATH, edition_lines())
    write_dump(config.REFERENCE_DUMP_PATH, author_lines())
    ids = await add_books(db_session, BOOK_ROWS)
    return {row[0]: book_id for row, book_id in zip(BOOK_ROWS, ids)}


@pytest.fixture
def controller(session_factory, config):
    return JobController(session_factory, config=config)


@pytest.fixture
def read_authors(session_factory):
    """Return {title: author} as currently stored."""
    async def _read() -> Dict[str, str]:
        async with session_factory() as session:
            result = await session.execute(select(Book.title, Book.author))
            return {title: author for title, author in result.all()}
    return _read
