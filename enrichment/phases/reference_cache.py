"""
Phase 2: in-memory reference key → display name table.

Rebuilt from the reference dump on every run (including resumes); it is
never checkpointed.
"""

from typing import Dict, Iterable, List, Optional
from enrichment.base import EnrichmentPhase, PhaseResult, ReaderFactory
from enrichment.extractors.dump_reader import DumpReader
from enrichment.progress import band_percent, caching_summary
from enrichment.transformers.identifiers import display_name, normalize_reference_key
from models.base import JobPhase
import logging

logger = logging.getLogger(__name__)


class ReferenceCache:
    """Author key → display name."""

    def __init__(self, names: Optional[Dict[str, str]] = None):
        self.names: Dict[str, str] = names or {}

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, key: str) -> bool:
        return key in self.names

    def add(self, key: str, name: str) -> None:
        self.names[key] = name

    def get(self, key: str) -> Optional[str]:
        return self.names.get(normalize_reference_key(key))

    def resolve(self, keys: Iterable[str]) -> List[str]:
        """Names for the keys that are known, order kept, blanks dropped."""
        resolved = []
        for key in keys:
            name = self.get(key)
            if name:
                resolved.append(name)
        return resolved


class ReferenceCacheBuilder(EnrichmentPhase):
    """Stream the reference dump into a ReferenceCache."""

    phase = JobPhase.CACHING

    def __init__(self, *args, path: str, reader_factory: ReaderFactory = DumpReader, **kwargs):
        super().__init__(*args, **kwargs)
        self.path = path
        self.reader_factory = reader_factory
        self.cache = ReferenceCache()

    async def run(self) -> PhaseResult:
        reader = self.reader_factory(
            self.path,
            delimiter=self.config.DUMP_DELIMITER,
            min_fields=self.config.DUMP_MIN_FIELDS
        )
        total_bytes = reader.file_size()
        logger.info(f"[Job {self.state.job_id}] Building reference cache from {self.path}")

        for line in reader.iter_lines():
            if line.ok and line.result.record_type == self.config.AUTHOR_RECORD_TYPE:
                key = normalize_reference_key(line.result.key)
                name = display_name(line.result.payload)
                if key and name:
                    self.cache.add(key, name)

            if line.number % self.config.LIVENESS_CHECK_LINES == 0:
                await self.report(band_percent(self.phase, line.offset, total_bytes), caching_summary(len(self.cache)))
                if await self.token.should_stop():
                    return PhaseResult(finished=False)

        logger.info(
            f"[Job {self.state.job_id}] Cached {len(self.cache)} reference names "
            f"({reader.stats.lines_dropped} lines dropped)"
        )
        await self.report(band_percent(self.phase, 1, 1), caching_summary(len(self.cache)))
        return PhaseResult(finished=True)
