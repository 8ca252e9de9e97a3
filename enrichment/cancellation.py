"""
Cooperative cancellation for long-running phases.

Each job gets its own CancellationToken. Batch loops call
``await token.should_stop()`` between batches; nothing is interrupted
mid-batch. A token is cancelled either directly (pause/stop in this
process) or by its probe, which reports the job's persisted status so a
pause issued from another process is noticed too.
"""

from typing import Awaitable, Callable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from models.base import JobStatus
from models.job import EnrichmentJob
import enum
import logging

logger = logging.getLogger(__name__)

StatusProbe = Callable[[], Awaitable[Optional[JobStatus]]]


class CancelReason(str, enum.Enum):
    PAUSE = "pause"
    STOP = "stop"


_REASON_BY_STATUS = {
    JobStatus.PAUSED: CancelReason.PAUSE,
}


class CancellationToken:
    """
    Polling-based cancellation token.

    Attributes:
        job_id: Job the token belongs to
        probe: Optional async callable returning the job's persisted status
    """

    def __init__(self, job_id: int, probe: Optional[StatusProbe] = None):
        self.job_id = job_id
        self.probe = probe
        self._reason: Optional[CancelReason] = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.STOP) -> None:
        if self._reason is None:
            self._reason = reason
            logger.info(f"[Job {self.job_id}] Cancellation requested ({reason.value})")

    async def should_stop(self) -> bool:
        """Liveness check: True once the job must leave its loop."""
        if self.cancelled:
            return True

        if self.probe is not None:
            status = await self.probe()
            if status is not None and status != JobStatus.RUNNING:
                self.cancel(_REASON_BY_STATUS.get(status, CancelReason.STOP))
                return True

        return False


class DatabaseStatusProbe:
    """Reload a job's status in a short-lived session of its own."""

    def __init__(self, session_factory: async_sessionmaker, job_id: int):
        self.session_factory = session_factory
        self.job_id = job_id

    async def __call__(self) -> Optional[JobStatus]:
        async with self.session_factory() as session:
            return await load_status(session, self.job_id)


async def load_status(session: AsyncSession, job_id: int) -> Optional[JobStatus]:
    result = await session.execute(select(EnrichmentJob.status).where(EnrichmentJob.id == job_id))
    return result.scalar_one_or_none()
