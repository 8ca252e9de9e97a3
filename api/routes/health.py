"""
Health check endpoint with database and job status
"""

from datetime import datetime, timedelta
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db, get_controller
from core.config import settings
from enrichment.controller import JobController
from models.base import JobStatus
from models.job import EnrichmentJob
from schemas.api import HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    controller: JobController = Depends(get_controller)
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Jobs running in this process
    - Running rows that have stopped reporting progress (stalled)
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    running_jobs = 0
    stalled_jobs = 0

    if db_connected:
        try:
            running_result = await db.execute(
                select(func.count()).select_from(EnrichmentJob).where(EnrichmentJob.status == JobStatus.RUNNING)
            )
            running_jobs = running_result.scalar() or 0

            cutoff = datetime.utcnow() - timedelta(minutes=settings.STALE_JOB_MINUTES)
            stalled_result = await db.execute(
                select(func.count()).select_from(EnrichmentJob).where(
                    EnrichmentJob.status == JobStatus.RUNNING,
                    EnrichmentJob.updated_at < cutoff
                )
            )
            stalled_jobs = stalled_result.scalar() or 0
        except Exception as e:
            logger.error(f"Failed to count jobs: {str(e)}")

    if not db_connected:
        overall = "unhealthy"
    elif stalled_jobs:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthCheckResponse(
        status=overall,
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        active_jobs=controller.active_job_ids(),
        running_jobs=running_jobs,
        stalled_jobs=stalled_jobs
    )
