from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Integer, Text, Boolean, Index
from datetime import datetime
from models.base import Base, JSONType, RunStatus


class OnboardingRun(Base):
    """
    Ledger entry for one onboarding ticket-creation attempt.

    Purpose:
    - Idempotency: a successful run for a ref short-circuits retries
    - Audit trail of created/linked tickets, including partial outcomes
    """
    __tablename__ = "onboarding_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    onboarding_ref = Column(String(100), nullable=False, index=True)

    status = Column(Enum(RunStatus), default=RunStatus.PENDING, nullable=False, index=True)

    # Results
    parent_key = Column(String(50), nullable=True)
    child_keys = Column(JSONType, nullable=True)
    created_count = Column(Integer, default=0)
    linked_count = Column(Integer, default=0)
    dry_run = Column(Boolean, default=False, nullable=False)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Request snapshot
    payload = Column(JSONType, nullable=True)
    user_id = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_onboarding_run_ref_status", "onboarding_ref", "status"),
    )
