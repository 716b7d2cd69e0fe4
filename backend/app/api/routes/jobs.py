"""Operational endpoints for scheduler jobs."""
from __future__ import annotations

from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.schemas.jobs import JobRunRequest, JobRunResponse
from app.core.config import settings
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.job_runner import run_scheduling_for_all_users, run_scheduling_for_user

router = APIRouter()


@router.get("/jobs", tags=["jobs"])
def get_jobs_config(request: Request) -> dict:
    request_id = getattr(request.state, "request_id", None)
    with trace("jobs.config", metadata={"request_id": request_id}, request_id=request_id):
        data = {
            "scheduler_enabled": settings.scheduler_enabled,
            "schedule": {
                "timezone": settings.scheduler_timezone,
                "nightly_time": f"{settings.nightly_job_hour:02d}:{settings.nightly_job_minute:02d}",
            },
            "limits": {
                "global_daily_cap": settings.schedule_global_daily_cap,
                "per_goal_daily_cap": settings.schedule_per_goal_daily_cap,
                "per_goal_cap_ceiling": settings.schedule_per_goal_cap_ceiling,
                "target_per_week": settings.schedule_target_per_week,
                "rest_days": list(settings.schedule_rest_days),
            },
        }
    return {**data, "request_id": request_id or ""}


@router.post("/jobs/run-now", response_model=JobRunResponse, tags=["jobs"])
def run_job_now(
    request: Request,
    payload: JobRunRequest,
    db: Session = Depends(get_db),
) -> JobRunResponse:
    if not settings.debug:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Run-now only allowed in debug mode")

    request_id = getattr(request.state, "request_id", None)
    metadata = {"job": payload.job, "request_id": request_id}
    start = perf_counter()
    with trace("jobs.run_now", metadata=metadata, request_id=request_id):
        if payload.user_id:
            result = run_scheduling_for_user(db, payload.user_id, today=payload.today)
        else:
            result = run_scheduling_for_all_users(db, today=payload.today)

    latency_ms = (perf_counter() - start) * 1000
    log_metric(
        "jobs.run_now.success",
        1,
        metadata={"job": payload.job},
    )
    log_metric(
        "jobs.run_now.latency_ms",
        latency_ms,
        metadata={"job": payload.job},
    )

    return JobRunResponse(
        job=payload.job,
        users_processed=result.users_processed,
        occurrences_written=result.occurrences_written,
        dreams_too_tight=result.dreams_too_tight,
        request_id=request_id or "",
    )
