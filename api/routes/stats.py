"""
Mapping and catalogue statistics endpoint
"""
from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from core.config import settings
from enrichment.loaders.book_loader import BookLoader
from enrichment.loaders.mapping_loader import MappingLoader
from models.base import JobStatus
from models.book import Book
from models.job import EnrichmentJob
from models.mapping import IdentifierMapping
from schemas.api import StatsResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: AsyncSession = Depends(get_db)):
    """
    Get enrichment statistics.

    Returns:
    - Mapping table size, by extraction source
    - Identifiers still waiting on a work
    - Books still missing an author
    - Job counts by status
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"

    logger.info(f"[{request_id}] GET /stats")

    # ========== Mappings ==========

    mapping_loader = MappingLoader(db)
    total_mappings = await mapping_loader.count()
    pending_links = await mapping_loader.count_pending_links()

    by_source_result = await db.execute(
        select(IdentifierMapping.source, func.count()).group_by(IdentifierMapping.source)
    )
    mappings_by_source = {source.value: count for source, count in by_source_result.all()}

    # ========== Books ==========

    total_books_result = await db.execute(select(func.count()).select_from(Book))
    total_books = total_books_result.scalar() or 0
    missing = await BookLoader(db, placeholders=settings.PLACEHOLDER_AUTHORS).count_missing()

    # ========== Jobs ==========

    jobs_result = await db.execute(
        select(EnrichmentJob.status, func.count()).group_by(EnrichmentJob.status)
    )
    jobs_by_status = {job_status.value: count for job_status, count in jobs_result.all()}

    last_completed_result = await db.execute(
        select(func.max(EnrichmentJob.ended_at)).where(EnrichmentJob.status == JobStatus.COMPLETED)
    )
    last_completed = last_completed_result.scalar()

    logger.info(
        f"[{request_id}] Stats: {total_mappings} mappings, "
        f"{missing}/{total_books} books missing an author"
    )

    return StatsResponse(
        timestamp=datetime.utcnow(),
        total_mappings=total_mappings,
        mappings_by_source=mappings_by_source,
        pending_work_links=pending_links,
        total_books=total_books,
        books_missing_author=missing,
        jobs_by_status=jobs_by_status,
        last_completed_at=last_completed
    )
