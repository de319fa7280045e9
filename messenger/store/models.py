"""
messenger.store.models — SQLAlchemy 2.0 model for the local mirror
===================================================================

Tables:
- mirror_entries — Key/value cache holding one JSON blob per snapshot
  collection plus the current logged-in identity.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all mirror ORM models."""


# ---------------------------------------------------------------------------
# Mirror entries — one row per fixed key
# ---------------------------------------------------------------------------
class MirrorEntry(Base):
    """Key-value row of the client-local snapshot mirror.

    Values are stored as JSON strings; typed access lives in
    :class:`~messenger.store.mirror.LocalMirror`.
    """
    __tablename__ = "mirror_entries"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<MirrorEntry key={self.key!r} bytes={len(self.value_json)}>"
