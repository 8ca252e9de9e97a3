"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (JobType, JobStatus, JobPhase)
    job: Enrichment job rows polled by the monitoring surface
    checkpoint: Durable per-job resume points
    mapping: Identifier to reference-key mappings and pending work links
    book: The primary catalogue table being enriched

Usage:
    from models.job import EnrichmentJob
    from models.base import JobStatus, JobPhase

Relationships:
    - EnrichmentJob → EnrichmentCheckpoint (one-to-one, keyed by job id)
    - IdentifierMapping and Book share the identifier scheme (normalized ISBN)
"""

from models.base import Base, JobType, JobStatus, JobPhase, MappingSource
from models.job import EnrichmentJob
from models.checkpoint import EnrichmentCheckpoint
from models.mapping import IdentifierMapping, PendingWorkLink
from models.book import Book

__all__ = [
    "Base",
    "JobType",
    "JobStatus",
    "JobPhase",
    "MappingSource",
    "EnrichmentJob",
    "EnrichmentCheckpoint",
    "IdentifierMapping",
    "PendingWorkLink",
    "Book",
]
