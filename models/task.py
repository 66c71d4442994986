from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, Text, Enum, Index
from datetime import datetime
from models.base import Base, JSONType, TaskSource, TaskStatus


class Task(Base):
    """
    Canonical task aggregated from any source.

    Identity:
    - id = "<source>:<source_id>", stable across syncs
    - (source, source_id) is unique

    Field mapping per source lives in ingestion/transformers/normalizer.py.
    Urgency columns are only populated for sources that carry SLA data
    (the issue tracker).
    """
    __tablename__ = "tasks"

    id = Column(String(400), primary_key=True)

    # Source tracking
    source = Column(Enum(TaskSource), nullable=False, index=True)
    source_id = Column(String(255), nullable=False)
    source_url = Column(String(2048), nullable=True)

    # Core fields
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.OPEN, nullable=False, index=True)
    priority = Column(Integer, default=50, nullable=False, index=True)
    due_date = Column(String(64), nullable=True, index=True)
    category = Column(String(50), nullable=True)

    # User-local state, never overwritten by a sync
    is_pinned = Column(Boolean, default=False, nullable=False)
    snoozed_until = Column(DateTime, nullable=True)

    # SLA / urgency metadata
    sla_breach_at = Column(String(64), nullable=True, index=True)
    urgency_score = Column(Integer, nullable=True)
    sla_remaining_ms = Column(BigInteger, nullable=True)
    attention_reasons = Column(JSONType, nullable=True)

    raw_data = Column(JSONType, nullable=True)

    # Timestamps
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_tasks_source_source_id", "source", "source_id", unique=True),
    )

    @staticmethod
    def make_id(source, source_id: str) -> str:
        source_value = source.value if isinstance(source, TaskSource) else str(source)
        return f"{source_value}:{source_id}"
