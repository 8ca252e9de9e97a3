"""
Dump builders and seed data shared by the test suites
"""

import json
from pathlib import Path
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from models import Book

AUTHOR = "/type/author"
EDITION = "/type/edition"
WORK = "/type/work"


def dump_line(record_type: str, key: str, payload, revision: int = 1,
              last_modified: str = "2008-04-01T03:28:50.625462") -> str:
    """One tab-separated dump line: type, key, revision, last_modified, JSON payload."""
    return "\t".join([record_type, key, str(revision), last_modified, json.dumps(payload)])


def write_dump(path, lines: List[str]) -> str:
    path = Path(path)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


async def add_books(session: AsyncSession, rows: List[Tuple[str, Optional[str], Optional[str]]]) -> List[int]:
    """Insert (title, isbn, author) rows and return their ids in order."""
    books = [Book(title=title, isbn=isbn, author=author) for title, isbn, author in rows]
    session.add_all(books)
    await session.commit()
    return [book.id for book in books]


def edition_lines() -> List[str]:
    """
    Ten-line mapping dump.

    Yields six identifier mappings; line 3 is malformed and line 6 repeats
    an identifier already mapped by line 1.
    """
    return [
        dump_line(EDITION, "/books/OL1M", {"isbn_13": ["978-0-00-000000-1"], "authors": [{"key": "/authors/OL1A"}]}),
        dump_line(EDITION, "/books/OL2M", {"isbn_10": ["000000002x"], "authors": [{"author": {"key": "/authors/OL2A"}}]}),
        "this line is not a dump record",
        dump_line(EDITION, "/books/OL3M", {"isbn_13": ["9780000000003"], "authors": ["/authors/OL1A", "/authors/OL3A"]}),
        dump_line(AUTHOR, "/authors/OL3A", {"name": "Ann Poe", "source_records": ["amazon:9780000000005", "ia:annpoe00"]}),
        dump_line(EDITION, "/books/OL4M", {"isbn_13": ["9780000000001"], "authors": [{"key": "/authors/OL3A"}]}),
        dump_line(EDITION, "/books/OL5M", {"isbn_13": ["9780000000006"], "authors": [{"key": "/authors/OL9A"}]}),
        dump_line(EDITION, "/books/OL6M", {"title": "No identifiers", "authors": [{"key": "/authors/OL1A"}]}),
        dump_line(WORK, "/works/OL1W", {"title": "A work", "authors": [{"author": {"key": "/authors/OL2A"}}]}),
        dump_line(EDITION, "/books/OL7M", {"isbn_13": ["9780000000007"], "authors": [{"key": "/authors/OL2A"}]}),
    ]


EXPECTED_MAPPINGS = {
    "9780000000001": "OL1A",
    "000000002X": "OL2A",
    "9780000000003": "OL1A,OL3A",
    "9780000000005": "OL3A",
    "9780000000006": "OL9A",
    "9780000000007": "OL2A",
}


def author_lines() -> List[str]:
    return [
        dump_line(AUTHOR, "/authors/OL1A", {"name": "Jane Doe"}),
        dump_line(AUTHOR, "/authors/OL2A", {"personal_name": "John Roe"}),
        dump_line(AUTHOR, "/authors/OL3A", {"name": "Ann Poe"}),
        "/type/author\t/authors/OL4A\t1\t2008-04-01T03:28:50\t{not json",
        dump_line("/type/redirect", "/authors/OL5A", {"location": "/authors/OL1A"}),
    ]


BOOK_ROWS = [
    ("B1", "9780000000001", None),           # Jane Doe
    ("B2", "000000002x", ""),                # John Roe
    ("B3", "9780000000003", "Unknown"),      # Jane Doe, Ann Poe
    ("B4", "9780000000004", None),           # no mapping
    ("B5", "9780000000005", "Real Author"),  # not missing
    ("B6", "", None),                        # no identifier
    ("B7", "9780000000006", None),           # author key not in reference dump
    ("B8", "978-0000000007", None),          # John Roe
]

EXPECTED_AUTHORS = {
    "B1": "Jane Doe",
    "B2": "John Roe",
    "B3": "Jane Doe, Ann Poe",
    "B4": None,
    "B5": "Real Author",
    "B6": None,
    "B7": None,
    "B8": "John Roe",
}

# B1, B2, B3, B4, B7, B8
CANDIDATE_COUNT = 6
UPDATABLE_COUNT = 4
