"""
Job row persistence.

Every write opens its own short-lived session so the row stays current
while a phase holds a long-running session of its own. Writes are Core
UPDATE statements filtered on the current status where a transition must
not overwrite a concurrent one (e.g. a late progress update after pause).
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.base import JobType, JobStatus, JobPhase
from models.job import EnrichmentJob
from schemas.checkpoint import CheckpointState
import logging
import uuid

logger = logging.getLogger(__name__)

GHOST_SUMMARY = "Job stopped due to server restart or new job start."


class JobTracker:
    """Create, read and update EnrichmentJob rows."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create(
        self,
        job_type: JobType,
        config_snapshot: Optional[Dict[str, Any]] = None,
        summary: str = "Starting..."
    ) -> int:
        async with self.session_factory() as session:
            job = EnrichmentJob(
                run_id=uuid.uuid4(),
                job_type=job_type,
                status=JobStatus.RUNNING,
                phase=JobPhase.MAPPING.value,
                progress=0,
                summary=summary,
                started_at=datetime.utcnow(),
                config_snapshot=config_snapshot
            )
            session.add(job)
            await session.commit()
            await session.refresh(job)
            logger.info(f"Created {job_type.value} job {job.id} (run_id={job.run_id})")
            return job.id

    async def get(self, job_id: int) -> Optional[EnrichmentJob]:
        async with self.session_factory() as session:
            return await session.get(EnrichmentJob, job_id)

    async def list(
        self,
        job_type: Optional[JobType] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50
    ) -> List[EnrichmentJob]:
        query = select(EnrichmentJob).order_by(EnrichmentJob.id.desc()).limit(limit)
        if job_type is not None:
            query = query.where(EnrichmentJob.job_type == job_type)
        if status is not None:
            query = query.where(EnrichmentJob.status == status)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_progress(
        self,
        job_id: int,
        state: CheckpointState,
        phase: JobPhase,
        progress: int,
        summary: str
    ) -> None:
        """Progress write for a running job; never changes status."""
        await self._update(
            job_id,
            {
                "phase": JobPhase(phase).value,
                "progress": progress,
                "summary": summary,
                **state.counters(),
            },
            from_statuses=(JobStatus.RUNNING,)
        )

    async def record_counters(self, job_id: int, state: CheckpointState) -> None:
        await self._update(job_id, {"phase": JobPhase(state.phase).value, **state.counters()})

    async def transition(
        self,
        job_id: int,
        status: JobStatus,
        summary: Optional[str] = None,
        from_statuses: Optional[Iterable[JobStatus]] = None,
        **fields: Any
    ) -> bool:
        """
        Move a job to ``status``.

        Terminal statuses also record ended_at and duration_seconds.

        Args:
            job_id: Job id
            status: New status
            summary: New summary (kept unchanged when None)
            from_statuses: Only apply when the current status is one of these
            **fields: Extra columns to set (counters, error details, progress)

        Returns:
            True if the row was updated
        """
        values: Dict[str, Any] = {"status": status, **fields}
        if summary is not None:
            values["summary"] = summary

        if status.is_terminal:
            job = await self.get(job_id)
            now = datetime.utcnow()
            values["ended_at"] = now
            if job is not None and job.started_at is not None:
                values["duration_seconds"] = (now - job.started_at).total_seconds()

        changed = await self._update(job_id, values, from_statuses=from_statuses)
        if changed:
            logger.info(f"Job {job_id} -> {status.value}")
        return changed

    async def stop_running(
        self,
        job_type: Optional[JobType] = None,
        older_than: Optional[timedelta] = None,
        exclude_ids: Iterable[int] = (),
        summary: str = GHOST_SUMMARY
    ) -> List[int]:
        """
        Force every matching running row to stopped.

        Returns:
            Ids of the rows that were stopped
        """
        query = select(EnrichmentJob.id).where(EnrichmentJob.status == JobStatus.RUNNING)
        if job_type is not None:
            query = query.where(EnrichmentJob.job_type == job_type)
        if older_than is not None:
            query = query.where(EnrichmentJob.updated_at < datetime.utcnow() - older_than)
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(EnrichmentJob.id.notin_(excluded))

        async with self.session_factory() as session:
            result = await session.execute(query)
            ghost_ids = list(result.scalars().all())

        stopped = []
        for ghost_id in ghost_ids:
            if await self.transition(ghost_id, JobStatus.STOPPED, summary, from_statuses=(JobStatus.RUNNING,)):
                stopped.append(ghost_id)

        if stopped:
            logger.warning(f"Stopped ghost jobs: {stopped}")
        return stopped

    async def _update(
        self,
        job_id: int,
        values: Dict[str, Any],
        from_statuses: Optional[Iterable[JobStatus]] = None
    ) -> bool:
        values.setdefault("updated_at", datetime.utcnow())
        stmt = update(EnrichmentJob).where(EnrichmentJob.id == job_id).values(**values)
        if from_statuses is not None:
            stmt = stmt.where(EnrichmentJob.status.in_(list(from_statuses)))

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0
