from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, BigInteger
from datetime import datetime
from models.base import Base, SyncStatus


class SourceSyncState(Base):
    """
    Tracks sync outcome per source.

    Purpose:
    - Surface degraded/error state per source without blocking others
    - Record run counts and the last error message

    Design:
    - One row per source
    - status is IDLE after a successful cycle, ERROR after a failed one
    """
    __tablename__ = "source_sync_state"

    id = Column(Integer, primary_key=True, autoincrement=True)

    source = Column(String(50), nullable=False, unique=True, index=True)

    # Statistics
    last_run_at = Column(DateTime, nullable=True, index=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)

    total_runs = Column(Integer, default=0)
    total_records_processed = Column(BigInteger, default=0)
    last_records_processed = Column(Integer, default=0)
    last_records_removed = Column(Integer, default=0)

    # Status
    status = Column(Enum(SyncStatus), default=SyncStatus.IDLE, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
