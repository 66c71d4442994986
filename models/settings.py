from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from datetime import datetime
from models.base import Base


class Setting(Base):
    """Global runtime setting (flat string key/value)"""
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserSetting(Base):
    """Per-user override of a global setting"""
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_settings_user_key", "user_id", "key", unique=True),
    )


DEFAULT_SETTINGS = {
    "refresh_interval_minutes": "5",
    "email_filter": "flagged",
    "email_days": "7",
    "email_limit": "50",
}
