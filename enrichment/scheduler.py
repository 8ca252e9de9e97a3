import logging
from datetime import timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from enrichment.controller import JobController

logger = logging.getLogger(__name__)


class StaleJobSweeper:
    """
    Periodically stop running jobs that nothing in this process is driving.

    A row stays "running" after its process dies. Once its updated_at is
    older than STALE_JOB_MINUTES and no token backs it, it is stopped so its
    checkpoint can be adopted by the next start.
    """

    def __init__(
        self,
        controller: JobController,
        stale_after_minutes: int = settings.STALE_JOB_MINUTES,
        interval_minutes: int = settings.SWEEP_INTERVAL_MINUTES
    ):
        self.controller = controller
        self.stale_after = timedelta(minutes=stale_after_minutes)
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler()

    async def sweep(self):
        """Job to stop stale running jobs"""
        try:
            stopped = await self.controller.reconcile_ghost_jobs(older_than=self.stale_after)
            if stopped:
                logger.warning(f"Sweeper: stopped stale jobs {stopped}")
            return stopped
        except Exception as e:
            logger.error(f"Sweeper: stale job sweep failed - {e}")
            return []

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="stale_job_sweep",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Stale job sweeper started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Stale job sweeper stopped")
