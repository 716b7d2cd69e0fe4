"""Area ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Area(Base):
    __tablename__ = "areas"
    __table_args__ = (Index("ix_areas_dream_id", "dream_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    dream_id = Column(UUID(as_uuid=True), ForeignKey("dreams.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
