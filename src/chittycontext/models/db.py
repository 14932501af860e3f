"""
SQLAlchemy database models for ChittyContext.

The SQL store backend keeps every key of the key-value contract as one row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class KeyValueEntry(Base):
    """One key of the key-value store, with optional expiry."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_kv_entries_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key={self.key!r}, expires_at={self.expires_at})>"
