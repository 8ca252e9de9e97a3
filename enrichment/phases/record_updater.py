"""
Phase 3: write resolved author names onto books missing one.

Each batch:
1. fetch the next page of candidates after the cursor (keyset pagination)
2. resolve ISBN → reference keys → names
3. write the updates and the checkpoint in one transaction
4. report progress, then poll the cancellation token

The cursor moves to the last fetched id whether or not any row in the page
was updated, so unresolvable rows are never fetched twice.
"""

from typing import List, Tuple
from enrichment.base import EnrichmentPhase, PhaseResult
from enrichment.loaders.book_loader import BookLoader
from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.phases.reference_cache import ReferenceCache
from enrichment.progress import RateTracker, band_percent, updating_summary
from enrichment.transformers.identifiers import join_names, normalize_identifier
from models.base import JobPhase
import logging

logger = logging.getLogger(__name__)


class RecordUpdater(EnrichmentPhase):
    """Keyset-paginated author repair over ``books``."""

    phase = JobPhase.UPDATING

    def __init__(self, *args, cache: ReferenceCache, **kwargs):
        super().__init__(*args, **kwargs)
        self.cache = cache
        self.books = BookLoader(self.db, placeholders=self.config.PLACEHOLDER_AUTHORS)
        self.mappings = MappingLoader(self.db)

    async def run(self) -> PhaseResult:
        if self.state.total_to_update is None:
            self.state.total_to_update = await self.books.count_missing()
            await self.checkpoints.save(self.state)
            logger.info(f"[Job {self.state.job_id}] {self.state.total_to_update} books need an author")

        rate = RateTracker(self.state.records_scanned)

        while True:
            if await self.token.should_stop():
                logger.info(f"[Job {self.state.job_id}] Updating interrupted at cursor {self.state.last_cursor}")
                return PhaseResult(finished=False)

            page = await self.books.fetch_missing_after(self.state.last_cursor, self.config.UPDATE_BATCH_SIZE)
            if not page:
                break

            updates = await self.resolve(page)
            written, failed = await self.books.apply_updates(updates, commit=False)

            self.state.records_scanned += len(page)
            self.state.records_updated += written
            self.state.records_failed += failed
            self.state.last_cursor = page[-1][0]
            await self.checkpoints.save(self.state)

            percent = self.percent()
            eta = rate.eta_minutes(self.state.records_scanned, self.state.total_to_update)
            await self.report(percent, updating_summary(self.state, percent, eta))

        logger.info(
            f"[Job {self.state.job_id}] Updating finished: scanned={self.state.records_scanned} "
            f"updated={self.state.records_updated} failed={self.state.records_failed}"
        )
        return PhaseResult(finished=True)

    async def resolve(self, page: List[Tuple[int, str]]) -> List[Tuple[int, str]]:
        """Turn (id, isbn) candidates into (id, author) updates for the ones we can name."""
        identifiers = {book_id: normalize_identifier(isbn) for book_id, isbn in page}
        mapped = await self.mappings.lookup(identifiers.values())

        updates = []
        for book_id, _ in page:
            keys = mapped.get(identifiers[book_id])
            if not keys:
                continue
            names = self.cache.resolve(keys)
            if names:
                updates.append((book_id, join_names(names, self.config.AUTHOR_MAX_LENGTH)))
        return updates

    def percent(self) -> int:
        return band_percent(self.phase, self.state.records_scanned, self.state.total_to_update)

