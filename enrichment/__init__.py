"""
Enrichment pipeline components for repairing missing book authors.

This package contains everything needed to run an author repair job
against Open Library style dumps:

Modules:
    base: Phase base classes (EnrichmentPhase, DumpPhase, PhaseResult)
    controller: Job orchestrator and state machine (start/pause/resume/stop)
    checkpoint: Durable per-job checkpoint store
    cancellation: Per-job cancellation tokens and status probes
    tracker: Job row persistence
    progress: Percentages, ETA and summary strings
    scheduler: APScheduler sweeper for stale running jobs

Subpackages:
    extractors: Streaming dump reader
    transformers: Identifier and reference-key extraction
    loaders: Mapping store and books store access
    phases: Mapping builder, work linker, reference cache, record updater

Architecture:
    A job runs its phases strictly in order:

    1. Mapping - identifier → author keys from the mapping dump
    2. Caching - author key → display name, rebuilt in memory every run
    3. Updating - keyset scan of books, writing resolved names

    Every phase checkpoints as it goes, so a paused, stopped, failed or
    crashed job resumes where its last checkpoint left it.

Usage:
    from core.database import async_session_maker
    from enrichment.controller import JobController

    controller = JobController(async_session_maker)
    job_id = await controller.start_job(JobType.AUTHOR_REPAIR)
    job = await controller.run_job(job_id)

    print(f"{job.status.value}: {job.summary}")
"""

__all__ = [
    "JobController",
    "CheckpointStore",
    "CancellationToken",
    "JobTracker",
    "StaleJobSweeper",
]
