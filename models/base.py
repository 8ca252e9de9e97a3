from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB, "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class JobType(str, enum.Enum):
    """Kinds of enrichment job"""
    AUTHOR_REPAIR = "author_repair"


class JobStatus(str, enum.Enum):
    """Enrichment job status"""
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.STOPPED, JobStatus.COMPLETED, JobStatus.FAILED)


class JobPhase(str, enum.Enum):
    """Checkpointed phases, in execution order"""
    MAPPING = "mapping"
    WORK_LINKING = "work_linking"
    MAPPING_COMPLETE = "mapping_complete"
    CACHING = "caching"
    UPDATING = "updating"
    COMPLETED = "completed"


class MappingSource(str, enum.Enum):
    """Which dump record produced an identifier mapping"""
    AUTHOR = "author"
    EDITION = "edition"
    WORK = "work"
