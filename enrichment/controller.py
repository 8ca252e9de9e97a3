# ============================================================================
# File: enrichment/controller.py
# Description: Enrichment job orchestrator and state machine
# ============================================================================
"""
Job Controller - runs enrichment phases and owns job state.

States:
    running → paused → running (resume)
    running | paused → stopped     (terminal)
    running → completed | failed   (terminal)

Phases (each resumes from the job's checkpoint):
    1. mapping        identifier → author keys from the mapping dump
    1b. work_linking  author keys inherited from works (optional)
    2. caching        author key → display name, in memory
    3. updating       keyset scan of books, writing resolved names

Only the controller mutates job rows. Each running job has its own
cancellation token in this process; the token registry is lost on restart,
which is why every resume starts from the persisted checkpoint and why a
running row without a token is treated as a ghost.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from core.config import Settings, settings as default_settings
from core.exceptions import (
    EnrichmentException,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobStateError,
)
from enrichment.base import ProgressCallback, ReaderFactory
from enrichment.cancellation import CancelReason, CancellationToken, DatabaseStatusProbe, load_status
from enrichment.checkpoint import CheckpointStore
from enrichment.extractors.dump_reader import DumpReader
from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.phases.mapping_builder import MappingBuilder
from enrichment.phases.reference_cache import ReferenceCacheBuilder
from enrichment.phases.record_updater import RecordUpdater
from enrichment.phases.work_linker import WorkLinker
from enrichment.progress import completed_summary, failed_summary, progress_floor
from enrichment.tracker import JobTracker
from models.base import JobType, JobStatus, JobPhase
from models.job import EnrichmentJob
from schemas.checkpoint import CheckpointState
import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class JobController:
    """
    Start, run, pause, resume and stop enrichment jobs.

    Attributes:
        session_factory: Creates sessions for phases and job-row writes
        config: Dump paths, batch sizes and intervals
        reader_factory: Builds the DumpReader for each dump pass
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Settings = default_settings,
        reader_factory: ReaderFactory = DumpReader
    ):
        self.session_factory = session_factory
        self.config = config
        self.reader_factory = reader_factory
        self.tracker = JobTracker(session_factory)

        self._tokens: Dict[int, CancellationToken] = {}
        self._job_types: Dict[int, JobType] = {}
        self._tasks: Dict[int, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _register(self, job_id: int, job_type: JobType) -> CancellationToken:
        token = CancellationToken(job_id, probe=DatabaseStatusProbe(self.session_factory, job_id))
        self._tokens[job_id] = token
        self._job_types[job_id] = job_type
        return token

    def _unregister(self, job_id: int) -> Optional[CancellationToken]:
        self._job_types.pop(job_id, None)
        return self._tokens.pop(job_id, None)

    def is_active(self, job_id: int) -> bool:
        return job_id in self._tokens

    def active_job_ids(self) -> List[int]:
        return list(self._tokens)

    def _ensure_type_idle(self, job_type: JobType) -> None:
        for job_id, active_type in self._job_types.items():
            if active_type == job_type:
                raise JobAlreadyRunningError(
                    f"A {job_type.value} job is already running",
                    context={"job_id": job_id, "job_type": job_type.value}
                )

    def config_snapshot(self) -> Dict[str, Any]:
        return {
            "mapping_dump_path": self.config.MAPPING_DUMP_PATH,
            "reference_dump_path": self.config.REFERENCE_DUMP_PATH,
            "works_dump_path": self.config.WORKS_DUMP_PATH,
            "mapping_batch_size": self.config.MAPPING_BATCH_SIZE,
            "checkpoint_interval_lines": self.config.CHECKPOINT_INTERVAL_LINES,
            "liveness_check_lines": self.config.LIVENESS_CHECK_LINES,
            "update_batch_size": self.config.UPDATE_BATCH_SIZE,
        }

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    async def get_job(self, job_id: int) -> EnrichmentJob:
        job = await self.tracker.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found", context={"job_id": job_id})
        return job

    async def list_jobs(
        self,
        job_type: Optional[JobType] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50
    ) -> List[EnrichmentJob]:
        return await self.tracker.list(job_type=job_type, status=status, limit=limit)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def reconcile_ghost_jobs(
        self,
        job_type: Optional[JobType] = None,
        older_than: Optional[timedelta] = None
    ) -> List[int]:
        """Stop running rows that no token in this process backs."""
        return await self.tracker.stop_running(
            job_type=job_type,
            older_than=older_than,
            exclude_ids=self._tokens.keys()
        )

    async def start_job(self, job_type: JobType = JobType.AUTHOR_REPAIR, resume: bool = True) -> int:
        """
        Create a running job and register its token.

        Args:
            job_type: Kind of job
            resume: Adopt the latest unfinished checkpoint of this job type

        Returns:
            The new job id

        Raises:
            JobAlreadyRunningError: If a job of this type is active in this process
        """
        self._ensure_type_idle(job_type)

        ghosts = await self.reconcile_ghost_jobs(job_type)
        if ghosts:
            logger.info(f"Reconciled {len(ghosts)} ghost {job_type.value} jobs before start")

        job_id = await self.tracker.create(job_type, self.config_snapshot())
        token = self._register(job_id, job_type)

        if resume:
            try:
                await self._adopt_checkpoint(job_id, job_type)
            except Exception:
                self._unregister(job_id)
                token.cancel(CancelReason.STOP)
                await self.tracker.transition(job_id, JobStatus.FAILED, "Failed: could not adopt checkpoint")
                raise

        return job_id

    async def _adopt_checkpoint(self, job_id: int, job_type: JobType) -> None:
        async with self.session_factory() as session:
            store = CheckpointStore(session)
            donor = await store.latest_resumable(job_type, exclude_job_id=job_id)
            if donor is None:
                return

            donor_status = await load_status(session, donor.job_id)
            adopted = await store.transfer(donor, job_id)

        if donor_status == JobStatus.PAUSED:
            await self.tracker.transition(
                donor.job_id,
                JobStatus.STOPPED,
                f"Superseded by job {job_id}.",
                from_statuses=(JobStatus.PAUSED,)
            )

        await self.tracker.update_progress(
            job_id,
            adopted,
            adopted.phase,
            progress_floor(adopted),
            f"Resuming from checkpoint of job {donor.job_id} "
            f"(phase {adopted.phase.value}, line {adopted.last_position:,}, cursor {adopted.last_cursor:,})"
        )

    async def pause_job(self, job_id: int) -> EnrichmentJob:
        job = await self.get_job(job_id)
        if job.status != JobStatus.RUNNING:
            raise JobStateError(
                f"Only running jobs can be paused (job {job_id} is {job.status.value})",
                context={"job_id": job_id, "status": job.status.value, "requested": "pause"}
            )

        token = self._unregister(job_id)
        if token is not None:
            token.cancel(CancelReason.PAUSE)

        await self.tracker.transition(
            job_id,
            JobStatus.PAUSED,
            f"Paused by user. (Current progress: {job.progress}%)",
            from_statuses=(JobStatus.RUNNING,)
        )
        return await self.get_job(job_id)

    async def resume_job(self, job_id: int) -> EnrichmentJob:
        """
        Mark a paused job running again and register a new token.

        The caller runs (run_job) or launches (launch) it afterwards.
        """
        job = await self.get_job(job_id)
        if job.status != JobStatus.PAUSED:
            raise JobStateError(
                f"Only paused jobs can be resumed (job {job_id} is {job.status.value})",
                context={"job_id": job_id, "status": job.status.value, "requested": "resume"}
            )
        self._ensure_type_idle(job.job_type)

        # The paused run must have left its loop before a new one starts
        await self.wait(job_id)

        self._register(job_id, job.job_type)
        await self.tracker.transition(
            job_id,
            JobStatus.RUNNING,
            "Resuming from checkpoint...",
            from_statuses=(JobStatus.PAUSED,)
        )
        return await self.get_job(job_id)

    async def stop_job(self, job_id: int) -> EnrichmentJob:
        job = await self.get_job(job_id)
        if job.status.is_terminal:
            raise JobStateError(
                f"Job {job_id} is already {job.status.value}",
                context={"job_id": job_id, "status": job.status.value, "requested": "stop"}
            )

        token = self._unregister(job_id)
        if token is not None:
            token.cancel(CancelReason.STOP)

        await self.tracker.transition(job_id, JobStatus.STOPPED, "Job stopped by user.")
        return await self.get_job(job_id)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def launch(self, job_id: int) -> asyncio.Task:
        """Run the job as a background task on the current event loop."""
        if job_id not in self._tokens:
            raise JobStateError(
                f"Job {job_id} is not registered to run in this process",
                context={"job_id": job_id, "requested": "launch"}
            )
        task = asyncio.create_task(self._run_in_background(job_id), name=f"enrichment-job-{job_id}")
        self._tasks[job_id] = task
        return task

    async def wait(self, job_id: int) -> None:
        task = self._tasks.get(job_id)
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
            self._tasks.pop(job_id, None)

    async def shutdown(self) -> None:
        """Stop every job running in this process and wait for the loops to exit."""
        for job_id in list(self._tokens):
            token = self._unregister(job_id)
            if token is not None:
                token.cancel(CancelReason.STOP)
        for job_id in list(self._tasks):
            await self.wait(job_id)

    async def _run_in_background(self, job_id: int) -> None:
        try:
            await self.run_job(job_id)
        except EnrichmentException as e:
            logger.error(f"Background job {job_id} failed: {e}")

    async def run_job(self, job_id: int) -> EnrichmentJob:
        """
        Run every remaining phase of a registered job.

        Returns:
            The job row after the run (completed, paused, stopped)

        Raises:
            EnrichmentException: After the job has been marked failed
        """
        token = self._tokens.get(job_id)
        if token is None:
            raise JobStateError(
                f"Job {job_id} is not registered to run in this process",
                context={"job_id": job_id, "requested": "run"}
            )

        job = await self.get_job(job_id)
        started = time.monotonic()
        state: Optional[CheckpointState] = None

        try:
            async with self.session_factory() as session:
                store = CheckpointStore(session)
                state = await store.load(job_id)
                if state is None:
                    state = CheckpointState(job_id=job_id, job_type=job.job_type)

                logger.info(f"[Job {job_id}] Running from phase {state.phase.value}")
                finished = await self._run_phases(session, store, state, token)

                if finished and self.config.CLEAR_CHECKPOINT_ON_COMPLETE:
                    await store.clear(job_id)
                elif finished:
                    await store.save(state)

        except Exception as e:
            await self._fail(job_id, e, state)
            if isinstance(e, EnrichmentException):
                raise
            raise EnrichmentException(
                f"Unexpected error: {e}",
                context={"job_id": job_id, "phase": state.phase.value if state else None},
                original_exception=e
            ) from e
        finally:
            if self._tokens.get(job_id) is token:
                self._unregister(job_id)

        if finished:
            minutes = (time.monotonic() - started) / 60
            completed = await self.tracker.transition(
                job_id,
                JobStatus.COMPLETED,
                completed_summary(state, minutes),
                from_statuses=(JobStatus.RUNNING,),
                phase=JobPhase.COMPLETED.value,
                progress=100,
                **state.counters()
            )
            if not completed:
                # Paused or stopped after the last liveness check; that status stands
                await self.tracker.record_counters(job_id, state)
        else:
            await self.tracker.record_counters(job_id, state)
            if token.reason != CancelReason.PAUSE:
                await self.tracker.transition(
                    job_id,
                    JobStatus.STOPPED,
                    "Job stopped.",
                    from_statuses=(JobStatus.RUNNING,)
                )

        return await self.get_job(job_id)

    async def _fail(self, job_id: int, error: Exception, state: Optional[CheckpointState]) -> None:
        if isinstance(error, EnrichmentException):
            message = error.message
            details = error.to_dict()
        else:
            message = f"{type(error).__name__}: {error}"
            details = {"error_type": type(error).__name__, "message": str(error)}

        logger.error(f"[Job {job_id}] Failed: {error}")
        failed = await self.tracker.transition(
            job_id,
            JobStatus.FAILED,
            failed_summary(message, state),
            from_statuses=(JobStatus.RUNNING, JobStatus.PAUSED),
            error_message=message,
            error_details=details,
            **(state.counters() if state else {})
        )
        if not failed and state is not None:
            await self.tracker.record_counters(job_id, state)

    def _progress_callback(self, state: CheckpointState) -> ProgressCallback:
        async def on_progress(phase: JobPhase, percent: int, summary: str) -> None:
            percent = max(percent, progress_floor(state))
            await self.tracker.update_progress(state.job_id, state, phase, percent, summary)
        return on_progress

    async def _run_phases(
        self,
        session: AsyncSession,
        store: CheckpointStore,
        state: CheckpointState,
        token: CancellationToken
    ) -> bool:
        """Run the remaining phases in order. Returns False when interrupted."""
        common = dict(
            config=self.config,
            on_progress=self._progress_callback(state)
        )
        link_works = bool(self.config.WORKS_DUMP_PATH)

        if state.phase == JobPhase.MAPPING:
            if await self._mapping_already_populated(session, state):
                logger.info(f"[Job {state.job_id}] Mapping already populated, skipping phase 1")
            else:
                builder = MappingBuilder(
                    session, state, store, token,
                    path=self.config.MAPPING_DUMP_PATH,
                    reader_factory=self.reader_factory,
                    link_works=link_works,
                    **common
                )
                if not (await builder.run()).finished:
                    return False
            state.enter_phase(JobPhase.WORK_LINKING)
            await store.save(state)

        if state.phase == JobPhase.WORK_LINKING:
            if link_works:
                linker = WorkLinker(
                    session, state, store, token,
                    path=self.config.WORKS_DUMP_PATH,
                    reader_factory=self.reader_factory,
                    **common
                )
                if not (await linker.run()).finished:
                    return False
            state.enter_phase(JobPhase.MAPPING_COMPLETE)
            await store.save(state)

        cache_builder = ReferenceCacheBuilder(
            session, state, store, token,
            path=self.config.REFERENCE_DUMP_PATH,
            reader_factory=self.reader_factory,
            **common
        )
        if not (await cache_builder.run()).finished:
            return False

        if state.phase == JobPhase.MAPPING_COMPLETE:
            state.enter_phase(JobPhase.UPDATING)
            state.last_cursor = 0
            state.total_to_update = None

        if state.phase == JobPhase.UPDATING:
            updater = RecordUpdater(session, state, store, token, cache=cache_builder.cache, **common)
            if not (await updater.run()).finished:
                return False

        state.enter_phase(JobPhase.COMPLETED)
        return True

    async def _mapping_already_populated(self, session: AsyncSession, state: CheckpointState) -> bool:
        if not self.config.SKIP_MAPPING_WHEN_POPULATED:
            return False
        if state.last_position or state.records_processed:
            return False
        return await MappingLoader(session).count() > 0
