"""Schemas for dream scheduling endpoints."""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.services.scheduling import ScheduleResult


class ScheduleRequest(BaseModel):
    user_id: UUID
    timezone: Optional[str] = None


class RescheduleRequest(BaseModel):
    user_id: UUID
    end_date: Optional[date] = None
    daily_minutes: Optional[int] = Field(default=None, ge=1, le=24 * 60)
    repeat_overrides: Dict[UUID, int] = Field(default_factory=dict)
    timezone: Optional[str] = None


class SchedulingWarningPayload(BaseModel):
    code: str
    message: str
    dream_id: Optional[UUID] = None
    action_id: Optional[UUID] = None
    on: Optional[date] = None


class ScheduleResponse(BaseModel):
    dream_id: UUID
    success: bool
    scheduled_count: int
    warnings: List[SchedulingWarningPayload]
    auto_compacted: bool
    too_tight: bool
    recommended_end: Optional[date] = None
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    request_id: str

    @classmethod
    def from_result(cls, result: ScheduleResult, request_id: Optional[str], **extra) -> "ScheduleResponse":
        return cls(
            dream_id=result.dream_id,
            success=result.success,
            scheduled_count=result.scheduled_count,
            warnings=[SchedulingWarningPayload(**warning.to_dict()) for warning in result.warnings],
            auto_compacted=result.auto_compacted,
            too_tight=result.too_tight,
            recommended_end=result.recommended_end,
            window_start=result.window_start,
            window_end=result.window_end,
            request_id=request_id or "",
            **extra,
        )


class RescheduleResponse(ScheduleResponse):
    deleted_count: int
    anchors_kept: int
