from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, JobType, JobStatus


class EnrichmentJob(Base):
    """
    One enrichment run and its externally visible progress.

    Purpose:
    - Single source of human-readable status (summary) for polling clients
    - Counters and percentage for progress display
    - Error tracking for failed runs

    Only the job controller mutates these rows. A row left in RUNNING by a
    crashed process is a ghost and is force-stopped by the next start.
    """
    __tablename__ = "enrichment_jobs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    job_type = Column(Enum(JobType), nullable=False, index=True)
    status = Column(Enum(JobStatus), default=JobStatus.RUNNING, nullable=False, index=True)
    phase = Column(String(50), nullable=True)

    # Progress surface
    progress = Column(Integer, default=0, nullable=False)
    summary = Column(Text, nullable=True)

    # Counters
    records_processed = Column(BigInteger, default=0, nullable=False)
    mappings_created = Column(BigInteger, default=0, nullable=False)
    records_scanned = Column(BigInteger, default=0, nullable=False)
    records_updated = Column(BigInteger, default=0, nullable=False)
    records_failed = Column(BigInteger, default=0, nullable=False)
    lines_dropped = Column(BigInteger, default=0, nullable=False)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    # Dump paths and batch sizes at run time
    config_snapshot = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_enrichment_job_type_status", "job_type", "status"),
    )
