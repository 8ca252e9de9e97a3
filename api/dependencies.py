"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from enrichment.controller import JobController

# One controller per process: it holds the in-process job registry
controller = JobController(async_session_maker)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session"""
    async with async_session_maker() as session:
        yield session


def get_controller() -> JobController:
    return controller
