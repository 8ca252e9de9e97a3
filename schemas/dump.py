"""
Pydantic schemas for decoded reference dump lines
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Union
from datetime import datetime
import enum


class ParseErrorKind(str, enum.Enum):
    """Why a dump line was dropped"""
    ENCODING = "encoding"
    FIELD_COUNT = "field_count"
    FIELD_TYPE = "field_type"
    PAYLOAD = "payload"


class DumpRecord(BaseModel):
    """
    One successfully decoded dump line.

    Line layout (tab separated):
        type    key    revision    last_modified    payload(JSON)
    """
    record_type: str
    key: str
    revision: Optional[int] = None
    last_modified: Optional[datetime] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class ParseError(BaseModel):
    """A line that could not be decoded. Counted and skipped by readers."""
    kind: ParseErrorKind
    detail: str

    class Config:
        use_enum_values = True


DecodeResult = Union[DumpRecord, ParseError]


class DumpLine(BaseModel):
    """
    A decode result positioned in its file.

    offset is the byte offset just past this line, so a reader restarted
    with start_line=number and start_offset=offset emits the next line.
    """
    number: int
    offset: int
    result: DecodeResult

    @property
    def ok(self) -> bool:
        return isinstance(self.result, DumpRecord)


class ReaderStats(BaseModel):
    """Running counters for one pass over a dump"""
    lines_read: int = 0
    lines_dropped: int = 0
    errors_by_kind: Dict[str, int] = Field(default_factory=dict)

    def record_error(self, error: ParseError) -> None:
        self.lines_dropped += 1
        kind = str(error.kind)
        self.errors_by_kind[kind] = self.errors_by_kind.get(kind, 0) + 1
