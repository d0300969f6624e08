"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class IntegrationCredential(Base):
    """One linked provider account per (user, provider)."""

    __tablename__ = "integration_credentials"

    user_id = Column(String(128), primary_key=True)
    provider = Column(String(32), primary_key=True)
    status = Column(String(16), nullable=False, default="connected")
    token = Column(Text, nullable=False)                 # "<iv hex>:<ciphertext hex>"
    connected_at = Column(DateTime(timezone=True))
    provider_meta = Column(JSON, nullable=False, default=dict)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_integration_credentials_user", "user_id"),)
