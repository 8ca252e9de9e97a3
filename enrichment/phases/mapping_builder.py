"""
Phase 1: build the identifier → reference-key mapping from the mapping dump.

Two record kinds contribute:

- author records carry ``source_records`` such as "amazon:0451526538";
  every token matching the identifier pattern maps to the author's own key
- edition records carry ``isbn_13``/``isbn_10`` and an ``authors`` list;
  every ISBN maps to the edition's author keys

Editions with ISBNs but no authors only reference a work. When a works dump
is configured they are parked in ``pending_work_links`` for the work linker.
"""

from typing import Dict, Optional, Tuple
from enrichment.base import DumpPhase
from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.progress import mapping_summary
from enrichment.transformers.identifiers import (
    compile_identifier_pattern,
    identifiers_from_edition,
    identifiers_from_source_records,
    normalize_reference_key,
    reference_keys,
    work_keys,
)
from models.base import JobPhase, MappingSource
from schemas.dump import DumpRecord
import logging

logger = logging.getLogger(__name__)


class MappingBuilder(DumpPhase):
    """
    Stream the mapping dump into ``identifier_mappings``.

    The buffer keeps the first association seen for an identifier, and the
    loader ignores identifiers already stored, so replaying any stretch of
    the dump changes nothing.
    """

    phase = JobPhase.MAPPING

    def __init__(self, *args, link_works: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.loader = MappingLoader(self.db)
        self.pattern = compile_identifier_pattern(self.config.IDENTIFIER_PATTERN)
        self.link_works = link_works
        self._buffer: Dict[str, Tuple[str, MappingSource]] = {}
        self._pending_links: Dict[str, str] = {}

    def consume(self, record: DumpRecord) -> None:
        if record.record_type == self.config.AUTHOR_RECORD_TYPE:
            self._consume_author(record)
        elif record.record_type == self.config.EDITION_RECORD_TYPE:
            self._consume_edition(record)

    def _consume_author(self, record: DumpRecord) -> None:
        key = normalize_reference_key(record.key)
        if not key:
            return
        for identifier in identifiers_from_source_records(record.payload.get("source_records"), self.pattern):
            self._buffer.setdefault(identifier, (key, MappingSource.AUTHOR))

    def _consume_edition(self, record: DumpRecord) -> None:
        identifiers = identifiers_from_edition(record.payload, self.pattern)
        if not identifiers:
            return

        keys = reference_keys(record.payload.get("authors"))
        if keys:
            joined = ",".join(keys)
            for identifier in identifiers:
                self._buffer.setdefault(identifier, (joined, MappingSource.EDITION))
            return

        if self.link_works:
            works = work_keys(record.payload)
            if works:
                for identifier in identifiers:
                    self._pending_links.setdefault(identifier, works[0])

    def pending(self) -> int:
        return len(self._buffer) + len(self._pending_links)

    async def flush(self) -> None:
        if self._buffer:
            by_source: Dict[MappingSource, Dict[str, str]] = {}
            for identifier, (keys, source) in self._buffer.items():
                by_source.setdefault(source, {})[identifier] = keys

            for source, associations in by_source.items():
                created, failed = await self.loader.insert_ignore(associations, source)
                self.state.mappings_created += created
                if failed:
                    logger.warning(f"[Job {self.state.job_id}] {failed} {source.value} mappings could not be written")
            self._buffer.clear()

        if self._pending_links:
            await self.loader.insert_pending_links(self._pending_links)
            self._pending_links.clear()

    def summarize(self, percent: int, eta: Optional[int]) -> str:
        return mapping_summary(self.state, percent, eta)
