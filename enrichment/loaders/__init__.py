"""
Database loaders with insert-ignore and row-by-row fallback semantics.
"""

from enrichment.loaders.mapping_loader import MappingLoader
from enrichment.loaders.book_loader import BookLoader

__all__ = ["MappingLoader", "BookLoader"]
