"""
Progress percentages, ETA and summary strings for job rows.

Percent bands per phase:
    mapping        5 - 45
    work linking  45 - 50
    caching       50 - 55
    updating      55 - 99
    completed     100
"""

import time
from typing import Optional
from models.base import JobPhase
from schemas.checkpoint import CheckpointState

PHASE_BANDS = {
    JobPhase.MAPPING: (5, 45),
    JobPhase.WORK_LINKING: (45, 50),
    JobPhase.MAPPING_COMPLETE: (50, 50),
    JobPhase.CACHING: (50, 55),
    JobPhase.UPDATING: (55, 99),
    JobPhase.COMPLETED: (100, 100),
}


def band_percent(phase: JobPhase, done: int, total: Optional[int]) -> int:
    """Map done/total into the phase's percent band, clamped to the band."""
    low, high = PHASE_BANDS[JobPhase(phase)]
    if not total or total <= 0:
        return low
    fraction = min(1.0, max(0.0, done / total))
    return low + int(fraction * (high - low))


def progress_floor(state: CheckpointState) -> int:
    """
    Lowest percent a job at this checkpoint can report.

    A resumed job rebuilds its reference cache before updating again; the
    floor keeps its progress from dropping back into the caching band.
    """
    if state.phase == JobPhase.UPDATING:
        return band_percent(state.phase, state.records_scanned, state.total_to_update)
    return band_percent(state.phase, 0, None)


class RateTracker:
    """Throughput since this process started working on a phase."""

    def __init__(self, start_done: int = 0):
        self.start_done = start_done
        self.started = time.monotonic()

    def eta_minutes(self, done: int, total: Optional[int]) -> Optional[int]:
        if not total:
            return None
        elapsed = time.monotonic() - self.started
        progressed = done - self.start_done
        if elapsed <= 0 or progressed <= 0:
            return None
        remaining = max(0, total - done)
        return int(remaining / (progressed / elapsed) / 60) + 1


def _eta_text(eta: Optional[int]) -> str:
    return f" • ETA: ~{eta} min" if eta is not None else ""


def mapping_summary(state: CheckpointState, percent: int, eta: Optional[int]) -> str:
    label = "Phase 1/3" if state.phase == JobPhase.MAPPING else "Phase 1/3 (works)"
    return (
        f"{label}: Processed {state.records_processed:,} dump lines ({percent}%). "
        f"Created {state.mappings_created:,} mappings. "
        f"Dropped {state.lines_dropped:,} lines.{_eta_text(eta)}"
    )


def caching_summary(cached: int) -> str:
    return f"Phase 2/3: Cached {cached:,} reference names."


def updating_summary(state: CheckpointState, percent: int, eta: Optional[int]) -> str:
    return (
        f"Phase 3/3 | Scanned: {state.records_scanned:,} / {state.total_to_update or 0:,} "
        f"| Updated: {state.records_updated:,} | Failed: {state.records_failed:,} "
        f"({percent}%){_eta_text(eta)}"
    )


def completed_summary(state: CheckpointState, minutes: float) -> str:
    return (
        f"Complete! Updated {state.records_updated:,} of {state.records_scanned:,} scanned records "
        f"in {minutes:.1f} minutes. Mappings created: {state.mappings_created:,}. "
        f"Dropped dump lines: {state.lines_dropped:,}."
    )


def failed_summary(message: str, state: Optional[CheckpointState]) -> str:
    if state is None:
        return f"Failed: {message}"
    return (
        f"Failed: {message} (processed={state.records_processed:,}, "
        f"mappings={state.mappings_created:,}, scanned={state.records_scanned:,}, "
        f"updated={state.records_updated:,}, dropped={state.lines_dropped:,})"
    )
