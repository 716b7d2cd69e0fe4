"""Schemas for job operations endpoints."""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class JobRunRequest(BaseModel):
    job: Literal["scheduling"] = "scheduling"
    user_id: Optional[UUID] = None
    today: Optional[date] = None


class JobRunResponse(BaseModel):
    job: str
    users_processed: int
    occurrences_written: int
    dreams_too_tight: int
    request_id: str
