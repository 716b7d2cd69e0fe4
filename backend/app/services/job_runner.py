"""Batch job runners for nightly scheduling."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.context import bind_user
from app.db.models.dream import Dream
from app.services.schedule_service import schedule_user_dreams


logger = logging.getLogger(__name__)


@dataclass
class JobRunResult:
    users_processed: int
    occurrences_written: int
    dreams_too_tight: int = 0
    users_failed: int = 0


def _active_user_ids(db: Session) -> List[UUID]:
    rows = (
        db.query(Dream.user_id)
        .filter(Dream.activated_at.isnot(None), Dream.archived_at.is_(None))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]


def run_scheduling_for_user(db: Session, user_id: UUID, *, today: Optional[date] = None) -> JobRunResult:
    outcome = schedule_user_dreams(db, user_id, today=today)
    return JobRunResult(
        users_processed=1,
        occurrences_written=outcome.written,
        dreams_too_tight=outcome.too_tight_count,
    )


def run_scheduling_for_all_users(
    db: Session,
    *,
    user_ids: Optional[Iterable[UUID]] = None,
    today: Optional[date] = None,
) -> JobRunResult:
    ids = _normalize_user_ids(user_ids, db)
    users_processed = 0
    occurrences_written = 0
    dreams_too_tight = 0
    failed = 0
    for uid in ids:
        try:
            with bind_user(uid):
                result = run_scheduling_for_user(db, uid, today=today)
        except Exception:
            failed += 1
            logger.exception("Scheduling job failed for user %s", uid)
            continue
        users_processed += 1
        occurrences_written += result.occurrences_written
        dreams_too_tight += result.dreams_too_tight
    return JobRunResult(
        users_processed=users_processed,
        occurrences_written=occurrences_written,
        dreams_too_tight=dreams_too_tight,
        users_failed=failed,
    )


def _normalize_user_ids(user_ids: Optional[Iterable[UUID]], db: Session) -> List[UUID]:
    if user_ids is None:
        ids = _active_user_ids(db)
    else:
        ids = list(dict.fromkeys(user_ids))
    return ids
