"""
Unit tests for cooperative cancellation
"""

import pytest
from unittest.mock import AsyncMock
from enrichment.cancellation import CancelReason, CancellationToken, DatabaseStatusProbe
from enrichment.tracker import JobTracker
from models.base import JobType, JobStatus


@pytest.mark.asyncio
async def test_token_without_probe_only_stops_when_cancelled():
    token = CancellationToken(job_id=1)

    assert await token.should_stop() is False

    token.cancel(CancelReason.PAUSE)

    assert token.cancelled
    assert token.reason == CancelReason.PAUSE
    assert await token.should_stop() is True


@pytest.mark.asyncio
async def test_first_cancel_reason_wins():
    token = CancellationToken(job_id=1)

    token.cancel(CancelReason.PAUSE)
    token.cancel(CancelReason.STOP)

    assert token.reason == CancelReason.PAUSE


@pytest.mark.asyncio
async def test_probe_running_keeps_going():
    probe = AsyncMock(return_value=JobStatus.RUNNING)
    token = CancellationToken(job_id=1, probe=probe)

    assert await token.should_stop() is False
    assert await token.should_stop() is False
    assert probe.await_count == 2


@pytest.mark.asyncio
async def test_probe_paused_cancels_with_pause_reason():
    token = CancellationToken(job_id=1, probe=AsyncMock(return_value=JobStatus.PAUSED))

    assert await token.should_stop() is True
    assert token.reason == CancelReason.PAUSE


@pytest.mark.asyncio
async def test_probe_any_other_status_stops():
    token = CancellationToken(job_id=1, probe=AsyncMock(return_value=JobStatus.STOPPED))

    assert await token.should_stop() is True
    assert token.reason == CancelReason.STOP


@pytest.mark.asyncio
async def test_cancelled_token_skips_probe():
    probe = AsyncMock(return_value=JobStatus.RUNNING)
    token = CancellationToken(job_id=1, probe=probe)
    token.cancel()

    assert await token.should_stop() is True
    probe.assert_not_awaited()


@pytest.mark.asyncio
async def test_database_probe_reads_persisted_status(session_factory):
    tracker = JobTracker(session_factory)
    job_id = await tracker.create(JobType.AUTHOR_REPAIR)
    probe = DatabaseStatusProbe(session_factory, job_id)

    assert await probe() == JobStatus.RUNNING

    await tracker.transition(job_id, JobStatus.PAUSED, "Paused by user. (Current progress: 10%)")

    assert await probe() == JobStatus.PAUSED
    assert await DatabaseStatusProbe(session_factory, job_id + 100)() is None
