from datetime import datetime, timezone

from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserSession(Base):
    """One row per issued access token; ``session_token`` holds the token's jti."""
    __tablename__ = "user_sessions"
    __table_args__ = (Index("ix_user_sessions_user_id_is_active", "user_id", "is_active"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_token = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_accessed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    session_data = Column(Text, nullable=True)
