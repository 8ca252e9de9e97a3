"""
Custom exceptions for the enrichment engine with structured error context.

Every exception carries a context dictionary so a failed job can record
what it was doing when it stopped. Per-line decode failures are NOT
exceptions: the dump reader returns them as ParseError values.

Exception Hierarchy:
    EnrichmentException (base)
    ├── ExtractionError
    │   └── UnreadableSourceError
    ├── LoadError
    │   ├── DatabaseError
    │   └── BatchWriteError
    ├── CheckpointError
    └── JobError
        ├── JobNotFoundError
        ├── JobStateError
        └── JobAlreadyRunningError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class EnrichmentException(Exception):
    """
    Base exception for all enrichment errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (job id, file path, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(EnrichmentException):
    """Base exception for reference dump reading failures."""
    pass


class UnreadableSourceError(ExtractionError):
    """
    Raised when a dump file is missing, cannot be opened or is corrupt.

    Always fatal for the running job.

    Context should include:
        - file_path: Path to the dump
        - line_number: Last line read before the failure (if any)
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(EnrichmentException):
    """Base exception for write failures."""
    pass


class DatabaseError(LoadError):
    """
    Raised when a database operation fails outright.

    Context should include:
        - operation: SELECT, INSERT, UPDATE, UPSERT
        - table_name: Name of the table
    """
    pass


class BatchWriteError(LoadError):
    """
    Raised when a whole batch write fails.

    Raised by the loaders' batch write and caught by their callers, which
    then retry the rows one by one.

    Context should include:
        - table_name: Name of the table
        - batch_size: Number of rows in the batch
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(EnrichmentException):
    """
    Raised when a checkpoint cannot be read or written.

    Context should include:
        - job_id: Job the checkpoint belongs to
        - phase: Phase being checkpointed
        - operation: read, write, transfer, clear
    """
    pass


# ============================================================================
# Job Control Errors
# ============================================================================

class JobError(EnrichmentException):
    """Base exception for job control failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job id does not exist."""
    pass


class JobStateError(JobError):
    """
    Raised on an illegal state transition (e.g. resuming a completed job).

    Context should include:
        - job_id: Job id
        - status: Current status
        - requested: Requested transition
    """
    pass


class JobAlreadyRunningError(JobError):
    """Raised when a job of the same type is already active in this process."""
    pass
