"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, PrimaryKeyConstraint, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class CredentialRecord(Base):
    """One token per (user, provider, kind).  ``token_value`` is stored encrypted."""

    __tablename__ = "credentials"
    __table_args__ = (
        PrimaryKeyConstraint("user_id", "provider", "token_kind", name="pk_credentials"),
    )

    user_id = Column(String(64), nullable=False)
    provider = Column(String(64), nullable=False)
    token_kind = Column(String(16), nullable=False)
    token_value = Column(Text, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=True)
