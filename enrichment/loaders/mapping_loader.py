"""
Load identifier mappings with insert-ignore semantics (idempotency)
"""

from typing import Dict, Iterable, Iterator, List, Sequence, Set, Tuple
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import dialect_insert
from core.exceptions import BatchWriteError
from models.base import MappingSource
from models.mapping import IdentifierMapping, PendingWorkLink
import logging

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under every backend's bind parameter limit
LOOKUP_CHUNK_SIZE = 500


def chunked(values: Sequence, size: int) -> Iterator[Sequence]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


class MappingLoader:
    """
    Write and read the identifier → reference-key table.

    Ensures:
    - Re-writing an identifier is a no-op, never an error or an overwrite
    - A failing batch is retried row by row; rows that still fail are counted
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(IdentifierMapping))
        return result.scalar() or 0

    async def existing(self, identifiers: Iterable[str]) -> Set[str]:
        """Return the subset of identifiers already mapped."""
        found = set()
        for chunk in chunked(list(identifiers), LOOKUP_CHUNK_SIZE):
            result = await self.db.execute(
                select(IdentifierMapping.identifier).where(IdentifierMapping.identifier.in_(chunk))
            )
            found.update(result.scalars().all())
        return found

    async def lookup(self, identifiers: Iterable[str]) -> Dict[str, List[str]]:
        """Return {identifier: [reference keys]} for the identifiers that are mapped."""
        mappings = {}
        for chunk in chunked(list(set(identifiers)), LOOKUP_CHUNK_SIZE):
            result = await self.db.execute(
                select(IdentifierMapping.identifier, IdentifierMapping.reference_keys)
                .where(IdentifierMapping.identifier.in_(chunk))
            )
            for identifier, keys in result.all():
                mappings[identifier] = [k for k in keys.split(",") if k]
        return mappings

    async def insert_ignore(
        self,
        associations: Dict[str, str],
        source: MappingSource
    ) -> Tuple[int, int]:
        """
        Insert identifier → reference_keys rows, skipping identifiers already present.

        Args:
            associations: {identifier: comma-joined reference keys}
            source: Which extraction produced the rows

        Returns:
            (rows created, rows that failed in the row-by-row fallback)
        """
        if not associations:
            return 0, 0

        already = await self.existing(associations.keys())
        rows = [
            {"identifier": identifier, "reference_keys": keys, "source": source}
            for identifier, keys in associations.items()
            if identifier not in already
        ]
        if not rows:
            return 0, 0

        return await self._write(IdentifierMapping.__table__, rows, "identifier_mappings")

    async def insert_pending_links(self, links: Dict[str, str]) -> Tuple[int, int]:
        """Insert identifier → work_key rows for editions without authors."""
        if not links:
            return 0, 0
        rows = [{"identifier": identifier, "work_key": work_key} for identifier, work_key in links.items()]
        return await self._write(PendingWorkLink.__table__, rows, "pending_work_links")

    async def pending_links_for_works(self, work_keys: Iterable[str]) -> List[Tuple[str, str]]:
        """Return (identifier, work_key) pairs waiting on any of the given works."""
        pairs = []
        for chunk in chunked(list(set(work_keys)), LOOKUP_CHUNK_SIZE):
            result = await self.db.execute(
                select(PendingWorkLink.identifier, PendingWorkLink.work_key)
                .where(PendingWorkLink.work_key.in_(chunk))
            )
            pairs.extend(result.all())
        return pairs

    async def count_pending_links(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(PendingWorkLink))
        return result.scalar() or 0

    async def _write_batch(self, stmt, rows: List[dict], table_name: str) -> None:
        try:
            await self.db.execute(stmt, rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise BatchWriteError(
                f"Batch insert into {table_name} failed ({len(rows)} rows)",
                context={"table_name": table_name, "batch_size": len(rows)},
                original_exception=e
            ) from e

    async def _write(self, table, rows: List[dict], table_name: str) -> Tuple[int, int]:
        stmt = dialect_insert(self.db, table).on_conflict_do_nothing(index_elements=["identifier"])

        try:
            await self._write_batch(stmt, rows, table_name)
            return len(rows), 0
        except BatchWriteError as e:
            logger.warning(f"{e.message}, retrying row by row: {e.original_exception}")

        created = 0
        failed = 0
        for row in rows:
            try:
                await self.db.execute(stmt, [row])
                await self.db.commit()
                created += 1
            except SQLAlchemyError as e:
                await self.db.rollback()
                failed += 1
                logger.warning(f"Skipping {table_name} row {row['identifier']!r}: {e}")

        logger.info(f"Row-by-row fallback into {table_name}: {created} written, {failed} failed")
        return created, failed
