"""
Pydantic schemas for data validation and serialization.

Schemas:
    dump: Decoded dump lines (DumpRecord, ParseError, DumpLine, ReaderStats)
    checkpoint: In-memory checkpoint state shared between phases
    api: API endpoint request/response schemas

Usage:
    from schemas.dump import DumpRecord, ParseError
    from schemas.checkpoint import CheckpointState
    from schemas.api import JobResponse, HealthCheckResponse
"""

__all__ = [
    "DumpRecord",
    "ParseError",
    "DumpLine",
    "ReaderStats",
    "CheckpointState",
    "JobStartRequest",
    "JobResponse",
    "JobListResponse",
    "HealthCheckResponse",
    "StatsResponse",
]
