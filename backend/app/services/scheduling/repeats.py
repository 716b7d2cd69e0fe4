"""Generate the follow-up occurrences of repeating actions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Optional
from uuid import UUID

from app.services.scheduling.calendar import CapacityCalendar, acquire_with_escalation, roll_forward
from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    OccurrenceRecord,
    PlannedOccurrence,
    Repeating,
    SchedulingWarning,
    WarningCode,
)

logger = logging.getLogger(__name__)

# Hard stop for a single action's expansion.
MAX_REPEATS_PER_ACTION = 2000


@dataclass
class ExpansionOutcome:
    placed: List[PlannedOccurrence] = field(default_factory=list)
    warnings: List[SchedulingWarning] = field(default_factory=list)


def expand_repeats(
    dream_id: UUID,
    area: AreaInput,
    action: ActionInput,
    *,
    anchor_no: int,
    anchor_date: date,
    horizon_end: date,
    calendar: CapacityCalendar,
    not_before: Optional[date] = None,
    existing_dates: Dict[int, date],
    seq: Iterator[int],
) -> ExpansionOutcome:
    """
    Place occurrences ``anchor_no + 1, anchor_no + 2, ...`` at ``anchor_date + k * interval``.

    Stops after ``horizon_end`` or the action's own repeat-until date, whichever is
    earlier. A date on a rest day rolls forward; a rolled date that does not land
    after the previous occurrence is dropped, so numbering stays dense and dates
    strictly increase. Occurrence numbers already in ``existing_dates`` are adopted
    rather than placed again; new dates before ``not_before`` are skipped unnumbered.
    """
    outcome = ExpansionOutcome()
    cadence = action.cadence
    if not isinstance(cadence, Repeating):
        return outcome

    interval = cadence.interval_days
    until = horizon_end if cadence.until is None else min(horizon_end, cadence.until)
    previous = anchor_date
    last_no = anchor_no

    for step in range(1, MAX_REPEATS_PER_ACTION + 1):
        day = roll_forward(anchor_date + timedelta(days=step * interval), calendar)
        if day > until:
            break
        if day <= previous:
            continue

        occurrence_no = last_no + 1
        if occurrence_no in existing_dates:
            previous = max(previous, existing_dates[occurrence_no])
            last_no = occurrence_no
            continue
        if not_before is not None and day < not_before:
            continue

        placed, escalated_to = acquire_with_escalation(calendar, day, dream_id)
        if escalated_to is not None:
            outcome.warnings.append(
                SchedulingWarning(
                    code=WarningCode.CAP_ESCALATED,
                    message=f"Daily cap raised to {escalated_to} for a repeat",
                    dream_id=dream_id,
                    action_id=action.id,
                    on=day,
                )
            )
        if not placed:
            calendar.consume(day, dream_id, force=True)
            outcome.warnings.append(
                SchedulingWarning(
                    code=WarningCode.REPEAT_OVER_CAPACITY,
                    message="Repeat kept on its date above the daily cap",
                    dream_id=dream_id,
                    action_id=action.id,
                    on=day,
                )
            )

        outcome.placed.append(
            PlannedOccurrence(
                action_id=action.id,
                area_id=area.id,
                dream_id=dream_id,
                occurrence_no=occurrence_no,
                planned_due_on=day,
                due_on=day,
                order_key=(area.position, action.position, occurrence_no),
                is_repeat=True,
                seq=next(seq),
                action_created_at=action.created_at,
            )
        )
        previous = day
        last_no = occurrence_no

    logger.debug(
        "Expanded action %s from #%s (%s) to #%s through %s",
        action.id,
        anchor_no,
        anchor_date,
        last_no,
        until,
    )
    return outcome


def existing_dates_by_action(records: Iterable[OccurrenceRecord]) -> Dict[UUID, Dict[int, date]]:
    mapping: Dict[UUID, Dict[int, date]] = {}
    for record in records:
        mapping.setdefault(record.action_id, {})[record.occurrence_no] = record.due_on
    return mapping

