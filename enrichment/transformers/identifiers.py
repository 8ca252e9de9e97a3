"""
Identifier and reference-key extraction from dump payloads.

Dump payloads are loosely typed: ISBN lists can hold hyphenated strings,
author references appear as plain strings, {"key": ...} objects or
{"author": {"key": ...}} wrappers depending on the record type and age.
Everything here is pure and side-effect free.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Pattern

DEFAULT_IDENTIFIER_PATTERN = r"^(?:\d{10,13}|\d{9}X)$"

AUTHOR_KEY_PREFIX = "/authors/"
WORK_KEY_PREFIX = "/works/"

_SEPARATORS = re.compile(r"[-\s]")


def compile_identifier_pattern(pattern: Optional[str] = None) -> Pattern:
    return re.compile(pattern or DEFAULT_IDENTIFIER_PATTERN)


def normalize_identifier(value: Any) -> str:
    """Strip hyphens and whitespace and upper-case a trailing ISBN-10 check digit."""
    if value is None:
        return ""
    return _SEPARATORS.sub("", str(value)).upper()


def normalize_reference_key(key: Any) -> str:
    """'/authors/OL1A' -> 'OL1A'. Keys without the prefix are returned stripped."""
    if not key:
        return ""
    key = str(key).strip()
    if key.startswith(AUTHOR_KEY_PREFIX):
        return key[len(AUTHOR_KEY_PREFIX):]
    return key


def normalize_work_key(key: Any) -> str:
    if not key:
        return ""
    key = str(key).strip()
    if key.startswith(WORK_KEY_PREFIX):
        return key[len(WORK_KEY_PREFIX):]
    return key


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def identifiers_from_source_records(source_records: Any, pattern: Pattern) -> List[str]:
    """
    Pull identifiers out of 'prefix:token' source record strings.

    Example:
        ["amazon:0451526538", "ia:somebook00", "bwb:9780451526533"]
        -> ["0451526538", "9780451526533"]
    """
    if not isinstance(source_records, list):
        return []

    found = []
    for source in source_records:
        if not isinstance(source, str):
            continue
        parts = source.split(":")
        if len(parts) < 2:
            continue
        token = normalize_identifier(parts[1])
        if pattern.match(token):
            found.append(token)
    return _dedupe(found)


def identifiers_from_edition(payload: Dict[str, Any], pattern: Pattern) -> List[str]:
    """ISBN-13 first, then ISBN-10, normalized and validated."""
    found = []
    for field in ("isbn_13", "isbn_10"):
        values = payload.get(field)
        if isinstance(values, str):
            values = [values]
        if not isinstance(values, list):
            continue
        for value in values:
            token = normalize_identifier(value)
            if pattern.match(token):
                found.append(token)
    return _dedupe(found)


def _reference_key(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        if entry.get("key"):
            return entry["key"]
        author = entry.get("author")
        if isinstance(author, dict) and author.get("key"):
            return author["key"]
        if isinstance(author, str):
            return author
    return None


def reference_keys(entries: Any) -> List[str]:
    """Normalized author keys from an 'authors' list, order preserved, duplicates removed."""
    if not isinstance(entries, list):
        return []
    return _dedupe(normalize_reference_key(_reference_key(entry)) for entry in entries)


def work_keys(payload: Dict[str, Any]) -> List[str]:
    """Normalized work keys referenced by an edition."""
    entries = payload.get("works")
    if not isinstance(entries, list):
        return []
    return _dedupe(normalize_work_key(_reference_key(entry)) for entry in entries)


def display_name(payload: Dict[str, Any]) -> Optional[str]:
    """Human-readable author name, falling back to personal_name."""
    for field in ("name", "personal_name"):
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def join_names(names: Iterable[str], max_length: int) -> str:
    return ", ".join(names)[:max_length]
