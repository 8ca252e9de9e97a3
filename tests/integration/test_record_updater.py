"""
Integration tests for the record updater (keyset scan and author writes)
"""

import logging
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from enrichment.cancellation import CancellationToken
from enrichment.checkpoint import CheckpointStore
from enrichment.loaders.book_loader import BookLoader
from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.phases.record_updater import RecordUpdater
from enrichment.phases.reference_cache import ReferenceCache
from enrichment.tracker import JobTracker
from models.base import JobType, JobStatus, JobPhase, MappingSource
from models.book import Book
from schemas.checkpoint import CheckpointState
from support import CANDIDATE_COUNT, EXPECTED_AUTHORS, EXPECTED_MAPPINGS, UPDATABLE_COUNT, add_books


NAMES = {"OL1A": "Jane Doe", "OL2A": "John Roe", "OL3A": "Ann Poe"}


@pytest_asyncio.fixture
async def mapped_library(library, db_session):
    """Books seeded and every expected mapping present."""
    await MappingLoader(db_session).insert_ignore(EXPECTED_MAPPINGS, MappingSource.EDITION)
    return library


async def _updating_state(session_factory):
    job_id = await JobTracker(session_factory).create(JobType.AUTHOR_REPAIR)
    return CheckpointState(job_id=job_id, phase=JobPhase.UPDATING)


def _updater(session, state, config, token=None):
    return RecordUpdater(
        session,
        state,
        CheckpointStore(session),
        token or CancellationToken(state.job_id),
        config=config,
        cache=ReferenceCache(dict(NAMES))
    )


@pytest.mark.asyncio
async def test_updates_resolvable_rows(session_factory, db_session, config, mapped_library, read_authors):
    state = await _updating_state(session_factory)

    result = await _updater(db_session, state, config).run()

    assert result.finished
    assert await read_authors() == EXPECTED_AUTHORS
    assert state.total_to_update == CANDIDATE_COUNT
    assert state.records_scanned == CANDIDATE_COUNT
    assert state.records_updated == UPDATABLE_COUNT
    assert state.records_failed == 0
    assert state.last_cursor == mapped_library["B8"]


@pytest.mark.asyncio
async def test_cursor_never_moves_backwards(session_factory, db_session, config, mapped_library, read_authors):
    state = await _updating_state(session_factory)
    cursors = []
    original_fetch = BookLoader.fetch_missing_after

    async def fetch_with_outside_edits(self, cursor, limit):
        cursors.append(cursor)
        if len(cursors) == 2:
            # Another writer breaks an already scanned row and fixes a pending one
            async with session_factory() as other:
                await other.execute(update(Book).where(Book.id == mapped_library["B1"]).values(author=None))
                await other.execute(update(Book).where(Book.id == mapped_library["B3"]).values(author="Someone Else"))
                await other.commit()
        return await original_fetch(self, cursor, limit)

    with patch.object(BookLoader, "fetch_missing_after", fetch_with_outside_edits):
        result = await _updater(db_session, state, config).run()

    assert result.finished
    assert cursors == sorted(set(cursors))
    assert cursors[0] == 0

    authors = await read_authors()
    assert authors["B1"] is None
    assert authors["B3"] == "Someone Else"
    assert authors["B8"] == "John Roe"
    # B1, B2 | B4, B7 | B8
    assert state.records_scanned == 5
    assert state.records_updated == 3


@pytest.mark.asyncio
async def test_denominator_is_counted_once(session_factory, db_session, config, mapped_library):
    state = await _updating_state(session_factory)
    probe = AsyncMock(side_effect=[JobStatus.RUNNING, JobStatus.PAUSED])

    interrupted = await _updater(db_session, state, config, CancellationToken(state.job_id, probe)).run()

    assert interrupted.finished is False
    assert state.records_scanned == 2

    await add_books(db_session, [("B9", "9780000000001", None)])

    resumed = await CheckpointStore(db_session).load(state.job_id)
    assert resumed.total_to_update == CANDIDATE_COUNT
    assert resumed.last_cursor == mapped_library["B2"]

    result = await _updater(db_session, resumed, config).run()

    assert result.finished
    assert resumed.total_to_update == CANDIDATE_COUNT
    assert resumed.records_scanned == CANDIDATE_COUNT + 1
    assert resumed.records_updated == UPDATABLE_COUNT + 1


@pytest.mark.asyncio
async def test_batch_is_written_inside_callers_transaction(db_session, mapped_library, read_authors, caplog):
    loader = BookLoader(db_session)
    updates = [(mapped_library["B1"], "First"), (mapped_library["B2"], "Second")]

    with caplog.at_level(logging.WARNING, logger="enrichment.loaders.book_loader"):
        assert await loader.apply_updates(updates, commit=False) == (2, 0)
        await db_session.rollback()

    authors = await read_authors()
    assert authors["B1"] is None
    assert authors["B2"] == ""
    assert "row by row" not in caplog.text

    await loader.apply_updates(updates, commit=False)
    await db_session.commit()

    authors = await read_authors()
    assert authors["B1"] == "First"
    assert authors["B2"] == "Second"


@pytest.mark.asyncio
async def test_failed_batch_falls_back_to_single_rows(db_session, mapped_library, read_authors):
    loader = BookLoader(db_session)
    bad_id = mapped_library["B4"]
    real_execute = db_session.execute

    async def flaky_execute(statement, params=None, *args, **kwargs):
        if isinstance(params, list) and (len(params) > 1 or params[0]["book_id"] == bad_id):
            raise OperationalError("UPDATE books", params, Exception("database is locked"))
        return await real_execute(statement, params, *args, **kwargs)

    updates = [(mapped_library["B1"], "First"), (mapped_library["B2"], "Second"), (bad_id, "Third")]
    with patch.object(db_session, "execute", new=flaky_execute):
        written, failed = await loader.apply_updates(updates)

    assert (written, failed) == (2, 1)

    authors = await read_authors()
    assert authors["B1"] == "First"
    assert authors["B2"] == "Second"
    assert authors["B4"] is None


@pytest.mark.asyncio
async def test_update_skips_rows_fixed_since_fetch(db_session, session_factory, mapped_library, read_authors):
    loader = BookLoader(db_session)
    page = await loader.fetch_missing_after(0, 10)
    assert mapped_library["B1"] in [book_id for book_id, _ in page]

    async with session_factory() as other:
        await other.execute(update(Book).where(Book.id == mapped_library["B1"]).values(author="Fixed By Hand"))
        await other.commit()

    await loader.apply_updates([(mapped_library["B1"], "Jane Doe")])

    assert (await read_authors())["B1"] == "Fixed By Hand"


@pytest.mark.asyncio
async def test_joined_names_are_truncated(session_factory, db_session, config, mapped_library):
    short_config = config.model_copy(update={"AUTHOR_MAX_LENGTH": 12})
    state = await _updating_state(session_factory)
    updater = _updater(db_session, state, short_config)

    updates = await updater.resolve([(mapped_library["B3"], "9780000000003"), (mapped_library["B4"], "9780000000004")])

    assert updates == [(mapped_library["B3"], "Jane Doe, Ann Poe"[:12])]
