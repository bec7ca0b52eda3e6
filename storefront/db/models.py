"""Database models."""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClientStoreEntry(Base):
    """One key-value pair of a browser session's client store."""

    __tablename__ = "client_store"
    __table_args__ = (
        UniqueConstraint("session_id", "key", name="uq_client_store_session_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, index=True, nullable=False)
    key = Column(String, nullable=False)  # token, refreshToken, user, activeRole, workspaceId
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
