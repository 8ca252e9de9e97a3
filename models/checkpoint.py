from sqlalchemy import Column, BigInteger, String, Enum, DateTime, ForeignKey, Index
from datetime import datetime
from models.base import Base, BigIntPK, JobType


class EnrichmentCheckpoint(Base):
    """
    Durable resume point for one enrichment job.

    Purpose:
    - Resume a multi-hour job exactly where it stopped
    - Survive process death (the in-process job registry does not)

    Design:
    - One row per job id, overwritten in place on every save (upsert)
    - last_position/last_byte_offset locate the next dump line to read
    - last_cursor is the highest books.id already scanned
    - total_to_update is counted once per job and never recomputed,
      so the progress denominator stays stable across restarts
    """
    __tablename__ = "enrichment_checkpoints"

    job_id = Column(BigIntPK, ForeignKey("enrichment_jobs.id"), primary_key=True)
    job_type = Column(Enum(JobType), nullable=False)
    phase = Column(String(50), nullable=False)

    # Stream position and primary-key cursor
    last_position = Column(BigInteger, default=0, nullable=False)
    last_byte_offset = Column(BigInteger, default=0, nullable=False)
    last_cursor = Column(BigInteger, default=0, nullable=False)

    # Counters
    records_processed = Column(BigInteger, default=0, nullable=False)
    mappings_created = Column(BigInteger, default=0, nullable=False)
    records_scanned = Column(BigInteger, default=0, nullable=False)
    records_updated = Column(BigInteger, default=0, nullable=False)
    records_failed = Column(BigInteger, default=0, nullable=False)
    lines_dropped = Column(BigInteger, default=0, nullable=False)
    total_to_update = Column(BigInteger, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_checkpoint_type_updated", "job_type", "updated_at"),
    )
