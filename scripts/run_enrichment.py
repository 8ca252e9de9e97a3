"""
Run an enrichment job from the shell.

Examples:
    python scripts/run_enrichment.py start
    python scripts/run_enrichment.py start --fresh
    python scripts/run_enrichment.py resume 12
    python scripts/run_enrichment.py status
    python scripts/run_enrichment.py stop 12

A job started here runs in the foreground; Ctrl+C stops it at the next
batch boundary and its checkpoint is kept for the next start.
"""

import argparse
import asyncio
import signal
import sys
import os
import logging
from typing import Callable, Set

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import EnrichmentException, JobError
from core.logging import setup_logging
from enrichment.controller import JobController
from models.base import JobType

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dump-driven author enrichment")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="Start a job and run it in the foreground")
    start.add_argument("--job-type", type=JobType, default=JobType.AUTHOR_REPAIR)
    start.add_argument("--fresh", action="store_true", help="Ignore unfinished checkpoints")

    resume = commands.add_parser("resume", help="Resume a paused job in the foreground")
    resume.add_argument("job_id", type=int)

    stop = commands.add_parser("stop", help="Stop a running or paused job")
    stop.add_argument("job_id", type=int)

    pause = commands.add_parser("pause", help="Pause a running job")
    pause.add_argument("job_id", type=int)

    status = commands.add_parser("status", help="List recent jobs")
    status.add_argument("--limit", type=int, default=10)

    commands.add_parser("reconcile", help="Stop running jobs left behind by dead processes")
    return parser


def interrupt_handler(controller: JobController, job_id: int) -> Callable[[], asyncio.Task]:
    """
    Build the SIGINT handler for a foreground job.

    Each interrupt schedules stop_job. The tasks are held until done and a
    stop that cannot be applied (a second Ctrl+C on a stopped job) is logged.
    """
    pending: Set[asyncio.Task] = set()

    def stopped(task: asyncio.Task) -> None:
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Stop request for job {job_id} not applied: {task.exception()}")

    def interrupt() -> asyncio.Task:
        logger.warning(f"Interrupted, stopping job {job_id} at the next batch boundary")
        task = asyncio.ensure_future(controller.stop_job(job_id))
        pending.add(task)
        task.add_done_callback(stopped)
        return task

    return interrupt


def _install_interrupt(controller: JobController, job_id: int) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, interrupt_handler(controller, job_id))
    except NotImplementedError:
        logger.debug("Signal handlers not supported on this platform")


async def _run(controller: JobController, job_id: int) -> int:
    _install_interrupt(controller, job_id)
    try:
        job = await controller.run_job(job_id)
    except EnrichmentException as e:
        logger.error(f"Job {job_id} failed: {e}")
        return 1
    print(f"Job {job.id} {job.status.value}: {job.summary}")
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    controller = JobController(async_session_maker)

    try:
        if args.command == "start":
            job_id = await controller.start_job(args.job_type, resume=not args.fresh)
            return await _run(controller, job_id)

        if args.command == "resume":
            await controller.resume_job(args.job_id)
            return await _run(controller, args.job_id)

        if args.command == "pause":
            job = await controller.pause_job(args.job_id)
            print(f"Job {job.id} {job.status.value}: {job.summary}")
            return 0

        if args.command == "stop":
            job = await controller.stop_job(args.job_id)
            print(f"Job {job.id} {job.status.value}: {job.summary}")
            return 0

        if args.command == "reconcile":
            stopped = await controller.reconcile_ghost_jobs()
            print(f"Stopped {len(stopped)} ghost jobs: {stopped}")
            return 0

        for job in await controller.list_jobs(limit=args.limit):
            print(f"{job.id:>6}  {job.job_type.value:<14} {job.status.value:<10} {job.progress:>3}%  {job.summary or ''}")
        return 0

    except JobError as e:
        logger.error(str(e))
        return 2
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
