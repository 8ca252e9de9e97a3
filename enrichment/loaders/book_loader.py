"""
Primary store access for the record updater.

The updater needs exactly two things from the catalogue:
- candidate rows (author missing, ISBN present) after a primary-key cursor
- a way to write the resolved author back
"""

from datetime import datetime
from typing import List, Sequence, Tuple
from sqlalchemy import select, func, update, or_, and_, bindparam
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import BatchWriteError
from models.book import Book
import logging

logger = logging.getLogger(__name__)


class BookLoader:
    """
    Keyset-paginated reads and batched author writes against ``books``.

    Attributes:
        placeholders: Author values treated as missing (besides NULL)
    """

    def __init__(self, db_session: AsyncSession, placeholders: Sequence[str] = ("", "Unknown")):
        self.db = db_session
        self.placeholders = list(placeholders)

    def _author_missing(self, table=Book.__table__):
        # Plain equality terms: an expanding IN cannot run under executemany
        return or_(table.c.author.is_(None), *[table.c.author == value for value in self.placeholders])

    def _needs_work(self):
        return and_(
            self._author_missing(),
            Book.__table__.c.isbn.isnot(None),
            Book.__table__.c.isbn != ""
        )

    async def count_missing(self) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Book).where(self._needs_work())
        )
        return result.scalar() or 0

    async def fetch_missing_after(self, cursor: int, limit: int) -> List[Tuple[int, str]]:
        """
        Next page of candidates: id > cursor, ascending, at most ``limit`` rows.

        Cost per page is O(limit) on the (author, id) index however deep the
        scan is, unlike OFFSET paging.

        Returns:
            List of (id, isbn) tuples
        """
        result = await self.db.execute(
            select(Book.id, Book.isbn)
            .where(Book.id > cursor, self._needs_work())
            .order_by(Book.id.asc())
            .limit(limit)
        )
        return [(row.id, row.isbn) for row in result.all()]

    async def _write_batch(self, stmt, params: List[dict], commit: bool) -> None:
        try:
            await self.db.execute(stmt, params)
            if commit:
                await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise BatchWriteError(
                f"Batch author update failed ({len(params)} rows)",
                context={"table_name": "books", "batch_size": len(params)},
                original_exception=e
            ) from e

    async def apply_updates(self, updates: List[Tuple[int, str]], commit: bool = True) -> Tuple[int, int]:
        """
        Write author values for a batch of book ids.

        The statement keeps the "author missing" predicate, so a row fixed by
        someone else since it was fetched is left alone. A healthy batch is
        one executemany inside the caller's transaction; only a failed batch
        is retried row by row, each row committed on its own.

        Args:
            updates: (book id, author) pairs
            commit: Commit the batch; pass False to let the caller commit it
                together with its checkpoint

        Returns:
            (rows written, rows that failed in the row-by-row fallback)
        """
        if not updates:
            return 0, 0

        table = Book.__table__
        stmt = (
            update(table)
            .where(table.c.id == bindparam("book_id"), self._author_missing(table))
            .values(author=bindparam("new_author"), updated_at=bindparam("touched_at"))
        )
        now = datetime.utcnow()
        params = [{"book_id": book_id, "new_author": author, "touched_at": now} for book_id, author in updates]

        try:
            await self._write_batch(stmt, params, commit)
            return len(params), 0
        except BatchWriteError as e:
            logger.warning(f"{e.message}, retrying row by row: {e.original_exception}")

        written = 0
        failed = 0
        for param in params:
            try:
                await self.db.execute(stmt, [param])
                await self.db.commit()
                written += 1
            except SQLAlchemyError as e:
                await self.db.rollback()
                failed += 1
                logger.warning(f"Skipping author update for book {param['book_id']}: {e}")

        return written, failed
