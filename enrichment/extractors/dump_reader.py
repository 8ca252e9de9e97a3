"""
Streaming reader for line-delimited reference dumps.

Open Library style dumps are tens of gigabytes, one record per line:

    /type/author	/authors/OL1A	3	2008-04-01T03:28:50.625462	{"name": "..."}

The reader:
- holds one line at a time (binary iteration, so byte offsets are exact)
- decodes every line independently into a DumpRecord or a ParseError
- never raises for a bad line; bad lines are counted in ReaderStats
- can restart at any line, seeking straight to a saved byte offset
"""

import gzip
import json
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterator, Optional
from core.exceptions import UnreadableSourceError
from schemas.dump import DumpLine, DumpRecord, ParseError, ParseErrorKind, ReaderStats, DecodeResult
import logging

logger = logging.getLogger(__name__)


def parse_line(text: str, delimiter: str = "\t", min_fields: int = 5) -> DecodeResult:
    """
    Decode one dump line.

    Args:
        text: Line content without the trailing newline
        delimiter: Field separator
        min_fields: Minimum number of fields; the last one is the JSON payload

    Returns:
        DumpRecord on success, ParseError otherwise
    """
    parts = text.split(delimiter)
    if len(parts) < min_fields:
        return ParseError(
            kind=ParseErrorKind.FIELD_COUNT,
            detail=f"expected at least {min_fields} fields, got {len(parts)}"
        )

    try:
        revision = int(parts[2]) if parts[2] else None
    except ValueError:
        return ParseError(kind=ParseErrorKind.FIELD_TYPE, detail=f"bad revision {parts[2][:40]!r}")

    last_modified = None
    if parts[3]:
        try:
            last_modified = datetime.fromisoformat(parts[3])
        except ValueError:
            last_modified = None

    try:
        payload = json.loads(parts[-1])
    except ValueError as e:
        return ParseError(kind=ParseErrorKind.PAYLOAD, detail=str(e)[:200])

    if not isinstance(payload, dict):
        return ParseError(kind=ParseErrorKind.PAYLOAD, detail=f"payload is {type(payload).__name__}, not an object")

    return DumpRecord(
        record_type=parts[0],
        key=parts[1],
        revision=revision,
        last_modified=last_modified,
        payload=payload
    )


class DumpReader:
    """
    Lazy, restartable reader over one dump file.

    Attributes:
        path: Dump location (``.gz`` files are decompressed on the fly)
        delimiter: Field separator (default: tab)
        min_fields: Minimum fields per line (default: 5)
        stats: Counters for the most recent pass
    """

    def __init__(self, path: str, delimiter: str = "\t", min_fields: int = 5):
        self.path = Path(path)
        self.delimiter = delimiter
        self.min_fields = min_fields
        self.stats = ReaderStats()

    @property
    def is_compressed(self) -> bool:
        return self.path.suffix == ".gz"

    def file_size(self) -> int:
        """Size on disk in bytes (compressed size for .gz files)."""
        self._ensure_readable()
        return self.path.stat().st_size

    def _ensure_readable(self) -> None:
        if not self.path.is_file():
            raise UnreadableSourceError(
                "Dump file not found",
                context={"file_path": str(self.path)}
            )

    def _open(self) -> BinaryIO:
        self._ensure_readable()
        try:
            if self.is_compressed:
                return gzip.open(self.path, "rb")
            return open(self.path, "rb")
        except OSError as e:
            raise UnreadableSourceError(
                "Dump file could not be opened",
                context={"file_path": str(self.path)},
                original_exception=e
            )

    def iter_lines(self, start_line: int = 0, start_offset: Optional[int] = None) -> Iterator[DumpLine]:
        """
        Yield decode results from line ``start_line + 1`` onwards.

        Args:
            start_line: Number of lines already consumed
            start_offset: Byte offset matching start_line; when given the
                reader seeks instead of skipping lines one by one

        Raises:
            UnreadableSourceError: If the file is missing or cannot be read
        """
        self.stats = ReaderStats()
        line_number = 0
        offset = 0

        handle = self._open()
        try:
            if start_line and start_offset:
                handle.seek(start_offset)
                line_number = start_line
                offset = start_offset
                logger.info(f"Resuming {self.path.name} at line {start_line} (byte {start_offset})")
            elif start_line:
                logger.info(f"Skipping {start_line} lines of {self.path.name}")

            for raw in handle:
                line_number += 1
                offset += len(raw)

                if line_number <= start_line:
                    continue

                self.stats.lines_read += 1
                result = self._decode(raw)
                if isinstance(result, ParseError):
                    self.stats.record_error(result)
                    logger.debug(f"Dropped line {line_number} of {self.path.name}: {result.kind} {result.detail}")

                yield DumpLine(number=line_number, offset=offset, result=result)

        except (OSError, EOFError) as e:
            raise UnreadableSourceError(
                "Dump file could not be read",
                context={"file_path": str(self.path), "line_number": line_number},
                original_exception=e
            )
        finally:
            handle.close()

    def _decode(self, raw: bytes) -> DecodeResult:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            return ParseError(kind=ParseErrorKind.ENCODING, detail=str(e)[:200])

        return parse_line(text.rstrip("\r\n"), self.delimiter, self.min_fields)

    def __iter__(self) -> Iterator[DumpRecord]:
        """Yield successfully decoded records only."""
        for line in self.iter_lines():
            if line.ok:
                yield line.result
