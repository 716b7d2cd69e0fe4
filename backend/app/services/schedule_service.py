"""Database adapter around the scheduling core."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models.action import Action
from app.db.models.action_occurrence import ActionOccurrence
from app.db.models.area import Area
from app.db.models.dream import Dream
from app.db.models.scheduling_log import SchedulingLog
from app.db.models.user import User
from app.services.locks import user_schedule_lock
from app.services.scheduling import (
    ActionInput,
    AreaInput,
    DreamBundle,
    DreamInput,
    OccurrenceRecord,
    PlannedOccurrence,
    ReschedulePlan,
    ScheduleResult,
    SchedulingConfig,
    SchedulingContext,
    SchedulingInputError,
    cadence_from_fields,
    plan_reschedule,
    schedule_dreams,
)

logger = logging.getLogger(__name__)


@dataclass
class RescheduleOutcome:
    result: ScheduleResult
    deleted_count: int = 0
    anchors_kept: int = 0
    written: int = 0


@dataclass
class BatchOutcome:
    results: List[ScheduleResult] = field(default_factory=list)
    written: int = 0
    skipped_dreams: int = 0

    @property
    def too_tight_count(self) -> int:
        return sum(1 for result in self.results if result.too_tight)


def default_config() -> SchedulingConfig:
    return SchedulingConfig.from_settings(settings)


def schedule_dream_for_user(
    db: Session,
    dream_id: UUID,
    user_id: UUID,
    *,
    timezone_name: Optional[str] = None,
    request_id: Optional[str] = None,
    config: Optional[SchedulingConfig] = None,
    today: Optional[date] = None,
) -> ScheduleResult:
    """Schedule one dream against the user's whole calendar and persist the new occurrences."""
    dream = get_owned_dream(db, dream_id, user_id)
    context = _context_for(db, user_id, timezone_name, today)

    try:
        with user_schedule_lock(db, user_id):
            bundle = load_dream_bundle(db, dream)
            existing = load_user_occurrences(db, user_id)
            result = schedule_dreams(context, [bundle], existing, config or default_config())[0]
            written = upsert_occurrences(db, user_id, result.occurrences)
            if dream.activated_at is None:
                dream.activated_at = datetime.now(timezone.utc)
                db.add(dream)
            _log_run(db, user_id, dream.id, "schedule", result, written, request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Dream %s scheduled for user %s: %s new occurrences", dream_id, user_id, written)
    return result


def reschedule_dream_for_user(
    db: Session,
    dream_id: UUID,
    user_id: UUID,
    *,
    end_date: Optional[date] = None,
    daily_minutes: Optional[int] = None,
    repeat_overrides: Optional[Dict[UUID, int]] = None,
    timezone_name: Optional[str] = None,
    request_id: Optional[str] = None,
    config: Optional[SchedulingConfig] = None,
    today: Optional[date] = None,
) -> RescheduleOutcome:
    """Apply the edits, drop the unanchored future and regenerate it."""
    dream = get_owned_dream(db, dream_id, user_id)
    context = _context_for(db, user_id, timezone_name, today)

    try:
        with user_schedule_lock(db, user_id):
            if end_date is not None:
                dream.end_date = end_date
            if daily_minutes is not None:
                dream.daily_minutes = daily_minutes
            db.add(dream)
            _apply_repeat_overrides(db, dream, repeat_overrides or {})

            bundle = load_dream_bundle(db, dream)
            existing = load_user_occurrences(db, user_id)
            plan = plan_reschedule(context, bundle, existing, config or default_config())
            _delete_occurrences(db, plan)
            written = upsert_occurrences(db, user_id, plan.result.occurrences)
            _log_run(
                db,
                user_id,
                dream.id,
                "reschedule",
                plan.result,
                written,
                request_id,
                extra={"deleted_count": plan.deleted_count, "anchors_kept": len(plan.anchors)},
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Dream %s rescheduled for user %s: %s deleted, %s new occurrences",
        dream_id,
        user_id,
        plan.deleted_count,
        written,
    )
    return RescheduleOutcome(
        result=plan.result,
        deleted_count=plan.deleted_count,
        anchors_kept=len(plan.anchors),
        written=written,
    )


def schedule_user_dreams(
    db: Session,
    user_id: UUID,
    *,
    request_id: Optional[str] = None,
    config: Optional[SchedulingConfig] = None,
    today: Optional[date] = None,
) -> BatchOutcome:
    """Schedule every active dream of a user in one shared-calendar run."""
    context = _context_for(db, user_id, None, today)
    outcome = BatchOutcome()

    try:
        with user_schedule_lock(db, user_id):
            bundles: List[DreamBundle] = []
            for dream in active_dreams(db, user_id):
                try:
                    bundle = load_dream_bundle(db, dream)
                    ordered = bundle.ordered_actions()
                except SchedulingInputError as exc:
                    outcome.skipped_dreams += 1
                    logger.warning("Skipping dream %s: %s", dream.id, exc)
                    continue
                if not _schedulable(dream, ordered):
                    outcome.skipped_dreams += 1
                    logger.debug("Skipping dream %s with nothing to schedule", dream.id)
                    continue
                bundles.append(bundle)

            if bundles:
                existing = load_user_occurrences(db, user_id)
                outcome.results = schedule_dreams(context, bundles, existing, config or default_config())
                for result in outcome.results:
                    outcome.written += upsert_occurrences(db, user_id, result.occurrences)
                _log_run(
                    db,
                    user_id,
                    None,
                    "batch",
                    None,
                    outcome.written,
                    request_id,
                    extra={
                        "dreams": [result.to_dict() for result in outcome.results],
                        "skipped_dreams": outcome.skipped_dreams,
                    },
                    too_tight=outcome.too_tight_count > 0,
                )
            db.commit()
    except Exception:
        db.rollback()
        raise

    return outcome


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def get_owned_dream(db: Session, dream_id: UUID, user_id: UUID) -> Dream:
    dream = db.get(Dream, dream_id)
    if dream is None:
        raise LookupError(f"Dream {dream_id} not found")
    if dream.user_id != user_id:
        raise PermissionError(f"Dream {dream_id} does not belong to user {user_id}")
    return dream


def active_dreams(db: Session, user_id: UUID) -> List[Dream]:
    return (
        db.query(Dream)
        .filter(
            Dream.user_id == user_id,
            Dream.activated_at.isnot(None),
            Dream.archived_at.is_(None),
        )
        .order_by(Dream.activated_at.asc(), Dream.created_at.asc())
        .all()
    )


def load_dream_bundle(db: Session, dream: Dream) -> DreamBundle:
    areas = (
        db.query(Area)
        .filter(Area.dream_id == dream.id, Area.deleted_at.is_(None))
        .order_by(Area.position.asc())
        .all()
    )
    actions = (
        db.query(Action)
        .filter(Action.dream_id == dream.id, Action.deleted_at.is_(None))
        .order_by(Action.position.asc(), Action.created_at.asc())
        .all()
    )
    return DreamBundle(
        dream=DreamInput(
            id=dream.id,
            user_id=dream.user_id,
            start_date=dream.start_date,
            end_date=dream.end_date,
            daily_minutes=dream.daily_minutes,
        ),
        areas=[AreaInput(id=area.id, dream_id=area.dream_id, position=area.position or 0) for area in areas],
        actions=[_action_input(action) for action in actions],
    )


def load_user_occurrences(db: Session, user_id: UUID) -> List[OccurrenceRecord]:
    rows = db.query(ActionOccurrence).filter(ActionOccurrence.user_id == user_id).all()
    return [
        OccurrenceRecord(
            action_id=row.action_id,
            occurrence_no=row.occurrence_no,
            due_on=row.due_on,
            dream_id=row.dream_id,
            planned_due_on=row.planned_due_on,
            completed_at=row.completed_at,
            id=row.id,
        )
        for row in rows
    ]


def _action_input(action: Action) -> ActionInput:
    try:
        cadence = cadence_from_fields(
            action.repeat_every_days,
            action.repeat_until_date,
            action.slice_count_target,
        )
    except SchedulingInputError as exc:
        raise SchedulingInputError(f"Action {action.id}: {exc}") from exc
    return ActionInput(
        id=action.id,
        area_id=action.area_id,
        position=action.position or 0,
        cadence=cadence,
        est_minutes=action.est_minutes,
        difficulty=action.difficulty or "medium",
        is_active=bool(action.is_active),
        created_at=action.created_at,
    )


def _schedulable(dream: Dream, ordered: list) -> bool:
    if dream.start_date is None or not ordered:
        return False
    return dream.end_date is None or dream.end_date >= dream.start_date


def _context_for(db: Session, user_id: UUID, timezone_name: Optional[str], today: Optional[date]) -> SchedulingContext:
    if not timezone_name:
        user = db.get(User, user_id)
        timezone_name = (user.timezone if user else None) or settings.schedule_default_timezone
    return SchedulingContext(user_id=user_id, timezone=timezone_name, today=today)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def upsert_occurrences(db: Session, user_id: UUID, occurrences: Iterable[PlannedOccurrence]) -> int:
    """Insert occurrences, silently skipping any (action_id, occurrence_no) already present."""
    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    written = 0
    for occurrence in occurrences:
        row = occurrence.to_upsert()
        row["user_id"] = user_id
        stmt = (
            insert(ActionOccurrence)
            .values(**row)
            .on_conflict_do_nothing(index_elements=["action_id", "occurrence_no"])
        )
        result = db.execute(stmt)
        written += max(result.rowcount or 0, 0)
    return written


def _delete_occurrences(db: Session, plan: ReschedulePlan) -> None:
    ids = [record.id for record in plan.deleted if record.id is not None]
    if not ids:
        return
    (
        db.query(ActionOccurrence)
        .filter(ActionOccurrence.id.in_(ids), ActionOccurrence.completed_at.is_(None))
        .delete(synchronize_session=False)
    )


def _apply_repeat_overrides(db: Session, dream: Dream, overrides: Dict[UUID, int]) -> None:
    if not overrides:
        return
    actions = (
        db.query(Action)
        .filter(Action.dream_id == dream.id, Action.id.in_(list(overrides)), Action.deleted_at.is_(None))
        .all()
    )
    found = {action.id: action for action in actions}
    missing = [str(action_id) for action_id in overrides if action_id not in found]
    if missing:
        raise SchedulingInputError(f"Unknown action(s) for dream {dream.id}: {', '.join(missing)}")
    for action_id, interval in overrides.items():
        if interval is None or interval < 1:
            raise SchedulingInputError(f"repeat_every_days must be >= 1 (got {interval})")
        action = found[action_id]
        action.repeat_every_days = interval
        action.slice_count_target = None
        db.add(action)
    db.flush()


def _log_run(
    db: Session,
    user_id: UUID,
    dream_id: Optional[UUID],
    run_type: str,
    result: Optional[ScheduleResult],
    written: int,
    request_id: Optional[str],
    *,
    extra: Optional[dict] = None,
    too_tight: Optional[bool] = None,
) -> None:
    payload = result.to_dict() if result is not None else {}
    payload.update(extra or {})
    payload["occurrences_written"] = written
    if too_tight is None:
        too_tight = bool(result and result.too_tight)
    db.add(
        SchedulingLog(
            user_id=user_id,
            dream_id=dream_id,
            run_type=run_type,
            occurrences_written=written,
            too_tight=too_tight,
            payload=payload,
            request_id=request_id,
        )
    )
