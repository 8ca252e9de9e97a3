"""
Unit tests for progress percentages and summaries
"""

from unittest.mock import patch
from enrichment.progress import (
    PHASE_BANDS,
    RateTracker,
    band_percent,
    completed_summary,
    failed_summary,
    mapping_summary,
    progress_floor,
    updating_summary,
)
from models.base import JobPhase
from schemas.checkpoint import CheckpointState


class TestBands:

    def test_bands_are_ordered(self):
        ordered = [
            JobPhase.MAPPING,
            JobPhase.WORK_LINKING,
            JobPhase.MAPPING_COMPLETE,
            JobPhase.CACHING,
            JobPhase.UPDATING,
            JobPhase.COMPLETED,
        ]
        lows = [PHASE_BANDS[phase][0] for phase in ordered]

        assert lows == sorted(lows)
        assert PHASE_BANDS[JobPhase.UPDATING] == (55, 99)

    def test_percent_within_band(self):
        assert band_percent(JobPhase.MAPPING, 0, 1000) == 5
        assert band_percent(JobPhase.MAPPING, 500, 1000) == 25
        assert band_percent(JobPhase.MAPPING, 1000, 1000) == 45
        assert band_percent(JobPhase.UPDATING, 50, 100) == 77

    def test_percent_clamped_to_band(self):
        assert band_percent(JobPhase.UPDATING, 150, 100) == 99
        assert band_percent(JobPhase.UPDATING, -5, 100) == 55

    def test_unknown_total_is_band_start(self):
        assert band_percent(JobPhase.UPDATING, 10, None) == 55
        assert band_percent(JobPhase.UPDATING, 10, 0) == 55
        assert band_percent("caching", 1, 1) == 55


    def test_floor_follows_checkpoint(self):
        assert progress_floor(CheckpointState(job_id=1)) == 5
        assert progress_floor(CheckpointState(job_id=1, phase=JobPhase.MAPPING_COMPLETE)) == 50
        resumed = CheckpointState(job_id=1, phase=JobPhase.UPDATING, records_scanned=50, total_to_update=100)
        assert progress_floor(resumed) == 77


class TestRateTracker:

    def test_no_eta_without_progress(self):
        tracker = RateTracker(start_done=10)

        assert tracker.eta_minutes(10, 100) is None
        assert tracker.eta_minutes(50, None) is None

    def test_eta_from_throughput(self):
        with patch("enrichment.progress.time.monotonic", return_value=1000.0):
            tracker = RateTracker(start_done=0)

        # 120 items in 60 seconds, 880 remaining -> 7.3 minutes, rounded up
        with patch("enrichment.progress.time.monotonic", return_value=1060.0):
            assert tracker.eta_minutes(120, 1000) == 8


class TestSummaries:

    def _state(self, **overrides):
        values = dict(
            job_id=1,
            phase=JobPhase.UPDATING,
            records_processed=1234567,
            mappings_created=4200,
            records_scanned=300,
            records_updated=250,
            records_failed=2,
            lines_dropped=7,
            total_to_update=1000,
        )
        values.update(overrides)
        return CheckpointState(**values)

    def test_mapping_summary(self):
        summary = mapping_summary(self._state(phase=JobPhase.MAPPING), 25, 3)

        assert summary.startswith("Phase 1/3:")
        assert "1,234,567 dump lines (25%)" in summary
        assert "Dropped 7 lines" in summary
        assert "ETA: ~3 min" in summary

    def test_updating_summary(self):
        summary = updating_summary(self._state(), 68, None)

        assert "Scanned: 300 / 1,000" in summary
        assert "Updated: 250" in summary
        assert "Failed: 2" in summary
        assert "ETA" not in summary

    def test_completed_and_failed_summaries(self):
        state = self._state()

        assert completed_summary(state, 1.25).startswith("Complete! Updated 250 of 300")
        assert failed_summary("Dump file not found", None) == "Failed: Dump file not found"
        assert "updated=250" in failed_summary("boom", state)
