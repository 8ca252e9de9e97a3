"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import JobType, JobStatus

# ============================================================================
# Job Schemas
# ============================================================================


class JobStartRequest(BaseModel):
    """Body of POST /jobs"""
    job_type: JobType = JobType.AUTHOR_REPAIR
    resume: bool = Field(default=True, description="Adopt the latest unfinished checkpoint of this job type")


class JobResponse(BaseModel):
    """One enrichment job as seen by polling clients"""
    id: int
    run_id: str
    job_type: JobType
    status: str = Field(..., description="running, paused, stopped, completed, failed (or stalled)")
    phase: Optional[str] = None
    progress: int = 0
    summary: Optional[str] = None

    records_processed: int = 0
    mappings_created: int = 0
    records_scanned: int = 0
    records_updated: int = 0
    records_failed: int = 0
    lines_dropped: int = 0

    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    updated_at: datetime
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_job(cls, job, stale_after_minutes: Optional[int] = None):
        """
        Build the response from an EnrichmentJob row.

        A running row not updated within stale_after_minutes is reported as
        "stalled": its process has most likely died.
        """
        status = job.status.value
        if (
            stale_after_minutes is not None
            and job.status == JobStatus.RUNNING
            and job.updated_at is not None
            and (datetime.utcnow() - job.updated_at).total_seconds() > stale_after_minutes * 60
        ):
            status = "stalled"

        return cls(
            id=job.id,
            run_id=str(job.run_id),
            job_type=job.job_type,
            status=status,
            phase=job.phase,
            progress=job.progress or 0,
            summary=job.summary,
            records_processed=job.records_processed or 0,
            mappings_created=job.mappings_created or 0,
            records_scanned=job.records_scanned or 0,
            records_updated=job.records_updated or 0,
            records_failed=job.records_failed or 0,
            lines_dropped=job.lines_dropped or 0,
            started_at=job.started_at,
            ended_at=job.ended_at,
            duration_seconds=job.duration_seconds,
            updated_at=job.updated_at,
            error_message=job.error_message,
            error_details=job.error_details,
        )

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": 12,
                "run_id": "550e8400-e29b-41d4-a716-446655440000",
                "job_type": "author_repair",
                "status": "running",
                "phase": "updating",
                "progress": 71,
                "summary": "Phase 3/3 | Scanned: 120,000 / 300,000 | Updated: 98,211 | Failed: 0 (62%) • ETA: ~14 min",
                "records_processed": 51234567,
                "mappings_created": 24871003,
                "records_scanned": 120000,
                "records_updated": 98211,
                "records_failed": 0,
                "lines_dropped": 312,
                "started_at": "2024-01-15T10:00:00Z",
                "updated_at": "2024-01-15T12:31:00Z"
            }
        }


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    active_jobs: List[int] = Field(default_factory=list, description="Job ids running in this process")
    running_jobs: int = 0
    stalled_jobs: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "active_jobs": [12],
                "running_jobs": 1,
                "stalled_jobs": 0
            }
        }


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Mapping and catalogue statistics"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    total_mappings: int
    mappings_by_source: Dict[str, int]
    pending_work_links: int

    total_books: int
    books_missing_author: int

    jobs_by_status: Dict[str, int]
    last_completed_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "timestamp": "2024-01-15T10:30:00Z",
                "total_mappings": 24871003,
                "mappings_by_source": {"author": 1200331, "edition": 23500102, "work": 170570},
                "pending_work_links": 530211,
                "total_books": 1250000,
                "books_missing_author": 180000,
                "jobs_by_status": {"completed": 3, "failed": 1},
                "last_completed_at": "2024-01-15T10:00:00Z"
            }
        }
