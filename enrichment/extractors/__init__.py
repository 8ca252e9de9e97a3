"""
Dump extractors.
"""

from enrichment.extractors.dump_reader import DumpReader, parse_line

__all__ = ["DumpReader", "parse_line"]
