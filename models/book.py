from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK


class Book(Base):
    """
    Primary catalogue record, the target of enrichment.

    The storefront owns this table. The engine only reads rows whose author
    is missing and writes the author column back.
    """
    __tablename__ = "books"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    isbn = Column(String(32), nullable=True, index=True)
    author = Column(String(255), nullable=True)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_books_author_id", "author", "id"),
    )
