"""
Phase 1b: resolve editions that only reference a work.

The mapping builder parks such editions in ``pending_work_links``
(identifier → work key). This phase streams the works dump, buffers
work key → author keys and joins each batch against the parked links.
"""

from typing import Dict, Optional
from enrichment.base import DumpPhase
from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.progress import mapping_summary
from enrichment.transformers.identifiers import normalize_work_key, reference_keys
from models.base import JobPhase, MappingSource
from schemas.dump import DumpRecord
import logging

logger = logging.getLogger(__name__)


class WorkLinker(DumpPhase):
    """Inherit author keys from works for identifiers waiting on them."""

    phase = JobPhase.WORK_LINKING

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.loader = MappingLoader(self.db)
        self._work_authors: Dict[str, str] = {}

    def consume(self, record: DumpRecord) -> None:
        if record.record_type != self.config.WORK_RECORD_TYPE:
            return
        work_key = normalize_work_key(record.key)
        keys = reference_keys(record.payload.get("authors"))
        if work_key and keys:
            self._work_authors.setdefault(work_key, ",".join(keys))

    def pending(self) -> int:
        return len(self._work_authors)

    async def flush(self) -> None:
        if not self._work_authors:
            return

        links = await self.loader.pending_links_for_works(self._work_authors.keys())
        associations = {
            identifier: self._work_authors[work_key]
            for identifier, work_key in links
        }
        self._work_authors.clear()

        if associations:
            created, failed = await self.loader.insert_ignore(associations, MappingSource.WORK)
            self.state.mappings_created += created
            if failed:
                logger.warning(f"[Job {self.state.job_id}] {failed} work-inherited mappings could not be written")

    def summarize(self, percent: int, eta: Optional[int]) -> str:
        return mapping_summary(self.state, percent, eta)
