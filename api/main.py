"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, jobs, stats
from api.dependencies import controller
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
from enrichment.scheduler import StaleJobSweeper
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Author Enrichment API",
    description="Job control and progress polling for dump-driven author repair",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Stops running jobs whose process has died
sweeper = StaleJobSweeper(controller)


# Include routers
app.include_router(health.router)
app.include_router(jobs.router)
app.include_router(stats.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Author Enrichment API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    # Nothing in a fresh process backs a running row
    ghosts = await controller.reconcile_ghost_jobs()
    if ghosts:
        logger.warning(f"Stopped {len(ghosts)} jobs left running by a previous process")

    sweeper.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Author Enrichment API")
    sweeper.stop()
    await controller.shutdown()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Author Enrichment API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "jobs": "/jobs",
            "stats": "/stats"
        }
    }
