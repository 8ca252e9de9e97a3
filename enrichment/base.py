"""
Abstract base classes for enrichment phases
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import Settings, settings as default_settings
from enrichment.cancellation import CancellationToken
from enrichment.checkpoint import CheckpointStore
from enrichment.extractors.dump_reader import DumpReader
from enrichment.progress import RateTracker, band_percent
from models.base import JobPhase
from schemas.checkpoint import CheckpointState
from schemas.dump import DumpLine, DumpRecord
import logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobPhase, int, str], Awaitable[None]]
ReaderFactory = Callable[..., DumpReader]


@dataclass
class PhaseResult:
    """
    Outcome of one phase run.

    finished is False when the phase left its loop because the job was
    paused or stopped; the checkpoint already holds the resume point.
    """
    finished: bool


class EnrichmentPhase(ABC):
    """
    Abstract base class for all phases.

    Responsibilities:
    - Share the job's checkpoint state and store
    - Poll the cancellation token between batches
    - Report progress through the controller's callback
    """

    phase: JobPhase

    def __init__(
        self,
        db_session: AsyncSession,
        state: CheckpointState,
        checkpoints: CheckpointStore,
        token: CancellationToken,
        config: Settings = default_settings,
        on_progress: Optional[ProgressCallback] = None
    ):
        self.db = db_session
        self.state = state
        self.checkpoints = checkpoints
        self.token = token
        self.config = config
        self.on_progress = on_progress

    @abstractmethod
    async def run(self) -> PhaseResult:
        """Run (or continue) the phase from the current checkpoint state."""
        pass

    async def report(self, percent: int, summary: str) -> None:
        if self.on_progress is not None:
            await self.on_progress(self.phase, percent, summary)


class DumpPhase(EnrichmentPhase):
    """
    A phase driven by one pass over a dump file.

    Subclasses decide what to keep from each record (consume), how much is
    buffered (pending) and how the buffer is written (flush). This class owns
    the line loop, checkpoint cadence and liveness checks:

    - every CHECKPOINT_INTERVAL_LINES lines: flush, then checkpoint
    - every LIVENESS_CHECK_LINES lines: report progress and poll the token;
      on cancellation flush, checkpoint and return unfinished

    Checkpoints always follow a flush, so a resume never skips a line whose
    associations were still buffered.
    """

    def __init__(self, *args, path: str, reader_factory: ReaderFactory = DumpReader, **kwargs):
        super().__init__(*args, **kwargs)
        self.path = path
        self.reader_factory = reader_factory

    @abstractmethod
    def consume(self, record: DumpRecord) -> None:
        pass

    @abstractmethod
    def pending(self) -> int:
        """Number of buffered items not yet written."""
        pass

    @abstractmethod
    async def flush(self) -> None:
        pass

    @abstractmethod
    def summarize(self, percent: int, eta: Optional[int]) -> str:
        pass

    async def run(self) -> PhaseResult:
        reader = self.reader_factory(
            self.path,
            delimiter=self.config.DUMP_DELIMITER,
            min_fields=self.config.DUMP_MIN_FIELDS
        )
        total_bytes = reader.file_size()
        rate = RateTracker(self.state.last_byte_offset)

        logger.info(
            f"[Job {self.state.job_id}] {self.phase.value}: reading {self.path} "
            f"from line {self.state.last_position}"
        )

        for line in reader.iter_lines(self.state.last_position, self.state.last_byte_offset or None):
            self.state.records_processed += 1
            if line.ok:
                self.consume(line.result)
            else:
                self.state.lines_dropped += 1

            if self.pending() >= self.config.MAPPING_BATCH_SIZE:
                await self.flush()

            at_checkpoint = line.number % self.config.CHECKPOINT_INTERVAL_LINES == 0
            at_liveness = line.number % self.config.LIVENESS_CHECK_LINES == 0

            if at_checkpoint:
                await self.checkpoint(line)

            if at_checkpoint or at_liveness:
                percent = band_percent(self.phase, line.offset, total_bytes)
                # Offsets count decompressed bytes, which the .gz size on disk cannot bound
                eta = None if reader.is_compressed else rate.eta_minutes(line.offset, total_bytes)
                await self.report(percent, self.summarize(percent, eta))

                if await self.token.should_stop():
                    if not at_checkpoint:
                        await self.checkpoint(line)
                    logger.info(
                        f"[Job {self.state.job_id}] {self.phase.value} interrupted at line {line.number}"
                    )
                    return PhaseResult(finished=False)

        await self.flush()

        logger.info(
            f"[Job {self.state.job_id}] {self.phase.value} finished {self.path}: "
            f"{reader.stats.lines_read} lines read, {reader.stats.lines_dropped} dropped "
            f"{reader.stats.errors_by_kind}"
        )
        return PhaseResult(finished=True)

    async def checkpoint(self, line: DumpLine) -> None:
        await self.flush()
        self.state.last_position = line.number
        self.state.last_byte_offset = line.offset
        await self.checkpoints.save(self.state)
