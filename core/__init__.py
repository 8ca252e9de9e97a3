"""
Core utilities and configuration for the enrichment engine.

Modules:
    config: Application configuration and environment variable management
    database: Database engine, session factory and dialect-aware inserts
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import UnreadableSourceError, JobStateError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "get_session",
    "dialect_insert",
    "setup_logging",
    # Exceptions
    "EnrichmentException",
    "ExtractionError",
    "UnreadableSourceError",
    "LoadError",
    "DatabaseError",
    "BatchWriteError",
    "CheckpointError",
    "JobError",
    "JobNotFoundError",
    "JobStateError",
    "JobAlreadyRunningError",
]
