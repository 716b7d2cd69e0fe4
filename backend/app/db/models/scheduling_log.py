"""Scheduling run log ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat


class SchedulingLog(Base):
    __tablename__ = "scheduling_log"
    __table_args__ = (
        Index("ix_scheduling_log_user_id", "user_id"),
        Index("ix_scheduling_log_dream_id", "dream_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    dream_id = Column(UUID(as_uuid=True), ForeignKey("dreams.id", ondelete="CASCADE"), nullable=True)
    # schedule | reschedule | batch
    run_type = Column(Text, nullable=False)
    occurrences_written = Column(Integer, nullable=False, server_default=sa_text("0"), default=0)
    too_tight = Column(Boolean, nullable=False, server_default=sa_text("false"), default=False)
    payload = Column(JSONBCompat, nullable=False, default=dict)
    request_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
