"""
Enrichment job control endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from api.dependencies import get_controller
from core.config import settings
from core.exceptions import JobAlreadyRunningError, JobError, JobNotFoundError
from enrichment.controller import JobController
from models.base import JobType, JobStatus
from schemas.api import JobStartRequest, JobResponse, JobListResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _http_error(error: JobError) -> HTTPException:
    if isinstance(error, JobNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_409_CONFLICT
    return HTTPException(status_code=code, detail=error.message)


def _response(job) -> JobResponse:
    return JobResponse.from_job(job, stale_after_minutes=settings.STALE_JOB_MINUTES)


@router.post("", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_job(
    request: Optional[JobStartRequest] = None,
    controller: JobController = Depends(get_controller)
):
    """
    Start an enrichment job in the background.

    Any running row of the same type without a live process behind it is
    stopped first; with resume=true the newest unfinished checkpoint is
    adopted.
    """
    request = request or JobStartRequest()
    try:
        job_id = await controller.start_job(request.job_type, resume=request.resume)
    except JobAlreadyRunningError as e:
        raise _http_error(e)

    controller.launch(job_id)
    logger.info(f"POST /jobs started job {job_id}")
    return _response(await controller.get_job(job_id))


@router.get("", response_model=JobListResponse)
async def list_jobs(
    job_type: Optional[JobType] = Query(None, description="Filter by job type"),
    job_status: Optional[JobStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=500),
    controller: JobController = Depends(get_controller)
):
    jobs = await controller.list_jobs(job_type=job_type, status=job_status, limit=limit)
    return JobListResponse(jobs=[_response(job) for job in jobs], total=len(jobs))


@router.get("/{job_id}/status", response_model=JobResponse)
async def job_status(job_id: int, controller: JobController = Depends(get_controller)):
    """Poll one job: status, phase, progress and summary."""
    try:
        return _response(await controller.get_job(job_id))
    except JobNotFoundError as e:
        raise _http_error(e)


@router.post("/{job_id}/pause", response_model=JobResponse)
async def pause_job(job_id: int, controller: JobController = Depends(get_controller)):
    try:
        return _response(await controller.pause_job(job_id))
    except JobError as e:
        raise _http_error(e)


@router.post("/{job_id}/resume", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def resume_job(job_id: int, controller: JobController = Depends(get_controller)):
    try:
        job = await controller.resume_job(job_id)
    except JobError as e:
        raise _http_error(e)

    controller.launch(job_id)
    return _response(job)


@router.post("/{job_id}/stop", response_model=JobResponse)
async def stop_job(job_id: int, controller: JobController = Depends(get_controller)):
    try:
        return _response(await controller.stop_job(job_id))
    except JobError as e:
        raise _http_error(e)
