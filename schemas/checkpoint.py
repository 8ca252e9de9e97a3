"""
Pydantic schema for checkpoint state passed between phases
"""

from pydantic import BaseModel
from typing import Optional
from models.base import JobType, JobPhase


class CheckpointState(BaseModel):
    """
    In-memory copy of an EnrichmentCheckpoint row.

    Phases mutate this object as they go and hand it to the checkpoint
    store to persist. Counters are cumulative for the whole job, across
    every resume.
    """
    job_id: int
    job_type: JobType = JobType.AUTHOR_REPAIR
    phase: JobPhase = JobPhase.MAPPING

    last_position: int = 0
    last_byte_offset: int = 0
    last_cursor: int = 0

    records_processed: int = 0
    mappings_created: int = 0
    records_scanned: int = 0
    records_updated: int = 0
    records_failed: int = 0
    lines_dropped: int = 0
    total_to_update: Optional[int] = None

    class Config:
        from_attributes = True

    def enter_phase(self, phase: JobPhase) -> None:
        """Move to the next phase; stream position restarts at the top of the next file."""
        self.phase = phase
        self.last_position = 0
        self.last_byte_offset = 0

    def counters(self) -> dict:
        return {
            "records_processed": self.records_processed,
            "mappings_created": self.mappings_created,
            "records_scanned": self.records_scanned,
            "records_updated": self.records_updated,
            "records_failed": self.records_failed,
            "lines_dropped": self.lines_dropped,
        }
