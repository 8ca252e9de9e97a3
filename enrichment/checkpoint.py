"""
Durable checkpoint store.

One row per job id, overwritten in place. The checkpoint is the only thing
that survives a crash, so every phase reads its starting point from here.
"""

from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import dialect_insert
from core.exceptions import CheckpointError
from models.base import JobType, JobStatus, JobPhase
from models.checkpoint import EnrichmentCheckpoint
from models.job import EnrichmentJob
from schemas.checkpoint import CheckpointState
import logging

logger = logging.getLogger(__name__)

_UPSERT_COLUMNS = (
    "job_type",
    "phase",
    "last_position",
    "last_byte_offset",
    "last_cursor",
    "records_processed",
    "mappings_created",
    "records_scanned",
    "records_updated",
    "records_failed",
    "lines_dropped",
    "total_to_update",
    "updated_at",
)


class CheckpointStore:
    """Load, upsert, transfer and clear per-job checkpoints."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def load(self, job_id: int) -> Optional[CheckpointState]:
        """Return the checkpoint for a job, or None if it never saved one."""
        try:
            result = await self.db.execute(
                select(EnrichmentCheckpoint)
                .where(EnrichmentCheckpoint.job_id == job_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to read checkpoint",
                context={"job_id": job_id, "operation": "read"},
                original_exception=e
            )
        if row is None:
            return None
        return CheckpointState.model_validate(row)

    async def save(self, state: CheckpointState, commit: bool = True) -> None:
        """
        Upsert the checkpoint row for ``state.job_id``.

        Args:
            state: Current phase, positions and counters
            commit: Commit immediately. Callers that wrote a batch in the same
                transaction rely on this commit to apply both together.
        """
        values = {
            "job_id": state.job_id,
            "job_type": state.job_type,
            "phase": JobPhase(state.phase).value,
            "last_position": state.last_position,
            "last_byte_offset": state.last_byte_offset,
            "last_cursor": state.last_cursor,
            "total_to_update": state.total_to_update,
            "updated_at": datetime.utcnow(),
            **state.counters(),
        }

        stmt = dialect_insert(self.db, EnrichmentCheckpoint.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["job_id"],
            set_={column: stmt.excluded[column] for column in _UPSERT_COLUMNS}
        )

        try:
            await self.db.execute(stmt)
            if commit:
                await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to save checkpoint",
                context={"job_id": state.job_id, "phase": state.phase, "operation": "write"},
                original_exception=e
            )

        logger.debug(
            f"[Job {state.job_id}] Checkpoint {state.phase}: line={state.last_position} "
            f"cursor={state.last_cursor} updated={state.records_updated}"
        )

    async def clear(self, job_id: int) -> None:
        await self.db.execute(delete(EnrichmentCheckpoint).where(EnrichmentCheckpoint.job_id == job_id))
        await self.db.commit()

    async def latest_resumable(
        self,
        job_type: JobType,
        exclude_job_id: Optional[int] = None,
        statuses: Iterable[JobStatus] = (JobStatus.STOPPED, JobStatus.FAILED, JobStatus.PAUSED),
    ) -> Optional[CheckpointState]:
        """
        Most recently saved unfinished checkpoint of a job type whose job is
        no longer running (stopped, failed, ghost-stopped or paused).
        """
        query = (
            select(EnrichmentCheckpoint)
            .join(EnrichmentJob, EnrichmentJob.id == EnrichmentCheckpoint.job_id)
            .where(
                EnrichmentCheckpoint.job_type == job_type,
                EnrichmentCheckpoint.phase != JobPhase.COMPLETED.value,
                EnrichmentJob.status.in_(list(statuses)),
            )
            .order_by(EnrichmentCheckpoint.updated_at.desc(), EnrichmentCheckpoint.job_id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if exclude_job_id is not None:
            query = query.where(EnrichmentCheckpoint.job_id != exclude_job_id)

        result = await self.db.execute(query)
        row = result.scalar_one_or_none()
        return CheckpointState.model_validate(row) if row else None

    async def transfer(self, source: CheckpointState, to_job_id: int) -> CheckpointState:
        """Hand a checkpoint over to a new job; the donor's row is removed."""
        adopted = source.model_copy(update={"job_id": to_job_id})
        try:
            await self.save(adopted, commit=False)
            await self.db.execute(
                delete(EnrichmentCheckpoint).where(EnrichmentCheckpoint.job_id == source.job_id)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to transfer checkpoint",
                context={"job_id": source.job_id, "to_job_id": to_job_id, "operation": "transfer"},
                original_exception=e
            )
        logger.info(f"Job {to_job_id} adopted checkpoint of job {source.job_id} at phase {adopted.phase}")
        return adopted
