"""Dream scheduling endpoints."""
from __future__ import annotations

from time import perf_counter
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.schemas.scheduling import (
    RescheduleRequest,
    RescheduleResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from app.db.deps import get_db
from app.observability.metrics import log_metric, log_scheduling_run
from app.observability.tracing import attach_output, trace
from app.services.schedule_service import reschedule_dream_for_user, schedule_dream_for_user
from app.services.scheduling import SchedulingInputError

router = APIRouter()


@router.post("/dreams/{dream_id}/schedule", response_model=ScheduleResponse, tags=["scheduling"])
def schedule_dream_endpoint(
    dream_id: UUID,
    request: Request,
    payload: ScheduleRequest,
    db: Session = Depends(get_db),
) -> ScheduleResponse:
    request_id = getattr(request.state, "request_id", None)
    metadata = {"dream_id": str(dream_id), "user_id": str(payload.user_id), "request_id": request_id}
    start = perf_counter()

    with trace("scheduling.schedule", metadata=metadata, user_id=payload.user_id, request_id=request_id) as span:
        try:
            result = schedule_dream_for_user(
                db,
                dream_id,
                payload.user_id,
                timezone_name=payload.timezone,
                request_id=request_id,
            )
        except (LookupError, PermissionError, SchedulingInputError) as exc:
            raise _http_error(exc) from exc
        attach_output(span, result.to_dict())

    log_scheduling_run(
        "scheduling.schedule",
        scheduled_count=result.scheduled_count,
        too_tight=result.too_tight,
        latency_ms=(perf_counter() - start) * 1000,
        metadata={"dream_id": str(dream_id)},
    )
    return ScheduleResponse.from_result(result, request_id)


@router.post("/dreams/{dream_id}/reschedule", response_model=RescheduleResponse, tags=["scheduling"])
def reschedule_dream_endpoint(
    dream_id: UUID,
    request: Request,
    payload: RescheduleRequest,
    db: Session = Depends(get_db),
) -> RescheduleResponse:
    request_id = getattr(request.state, "request_id", None)
    metadata = {
        "dream_id": str(dream_id),
        "user_id": str(payload.user_id),
        "request_id": request_id,
        "end_date": payload.end_date.isoformat() if payload.end_date else None,
        "repeat_overrides": len(payload.repeat_overrides),
    }
    start = perf_counter()

    with trace("scheduling.reschedule", metadata=metadata, user_id=payload.user_id, request_id=request_id) as span:
        try:
            outcome = reschedule_dream_for_user(
                db,
                dream_id,
                payload.user_id,
                end_date=payload.end_date,
                daily_minutes=payload.daily_minutes,
                repeat_overrides=payload.repeat_overrides,
                timezone_name=payload.timezone,
                request_id=request_id,
            )
        except (LookupError, PermissionError, SchedulingInputError) as exc:
            raise _http_error(exc) from exc
        attach_output(span, {**outcome.result.to_dict(), "deleted_count": outcome.deleted_count})

    result = outcome.result
    log_scheduling_run(
        "scheduling.reschedule",
        scheduled_count=result.scheduled_count,
        too_tight=result.too_tight,
        latency_ms=(perf_counter() - start) * 1000,
        metadata={"dream_id": str(dream_id)},
    )
    log_metric("scheduling.reschedule.deleted", outcome.deleted_count, metadata={"dream_id": str(dream_id)})
    return RescheduleResponse.from_result(
        result,
        request_id,
        deleted_count=outcome.deleted_count,
        anchors_kept=outcome.anchors_kept,
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dream not found")
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Dream does not belong to user")
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

