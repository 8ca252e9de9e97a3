"""
Enrichment phases, in execution order.
"""

from enrichment.phases.mapping_builder import MappingBuilder
from enrichment.phases.work_linker import WorkLinker
from enrichment.phases.reference_cache import ReferenceCache, ReferenceCacheBuilder
from enrichment.phases.record_updater import RecordUpdater

__all__ = [
    "MappingBuilder",
    "WorkLinker",
    "ReferenceCache",
    "ReferenceCacheBuilder",
    "RecordUpdater",
]
