from sqlalchemy import Column, String, Enum, Text, DateTime
from datetime import datetime
from models.base import Base, MappingSource


class IdentifierMapping(Base):
    """
    Identifier (normalized ISBN) to reference keys built from a dump.

    Design:
    - identifier is the primary key; writes are insert-ignore, so the first
      mapping observed for an identifier is authoritative
    - reference_keys holds normalized keys joined with commas
      (e.g. "OL1A,OL2A" for a co-authored edition)
    """
    __tablename__ = "identifier_mappings"

    identifier = Column(String(20), primary_key=True)
    reference_keys = Column(Text, nullable=False)
    source = Column(Enum(MappingSource), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def keys(self):
        return [k for k in self.reference_keys.split(",") if k]


class PendingWorkLink(Base):
    """
    Identifier whose edition carries no author, waiting on its work record.

    Written by the mapping stage, consumed by the work linking stage. Kept on
    disk so neither stage has to hold an edition-to-work map in memory.
    """
    __tablename__ = "pending_work_links"

    identifier = Column(String(20), primary_key=True)
    work_key = Column(String(64), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
