"""Regenerate a dream's future after its end date, budget or cadences changed."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from app.services.scheduling.config import SchedulingConfig
from app.services.scheduling.orchestrator import Anchor, SchedulingOrchestrator
from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    DreamBundle,
    FiniteSeries,
    OccurrenceRecord,
    ScheduleResult,
    SchedulingContext,
)

logger = logging.getLogger(__name__)


@dataclass
class ReschedulePlan:
    dream_id: UUID
    deleted: List[OccurrenceRecord] = field(default_factory=list)
    anchors: Dict[UUID, OccurrenceRecord] = field(default_factory=dict)
    result: Optional[ScheduleResult] = None

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)


def anchor_occurrence(records: Sequence[OccurrenceRecord]) -> Optional[OccurrenceRecord]:
    """The latest completed occurrence of an action, or its first when none is done."""
    if not records:
        return None
    completed = [record for record in records if record.is_completed]
    if completed:
        return max(completed, key=lambda record: record.occurrence_no)
    return min(records, key=lambda record: record.occurrence_no)


def remaining_seedable(
    ordered: Sequence[Tuple[AreaInput, ActionInput]],
    anchors: Dict[UUID, OccurrenceRecord],
) -> int:
    """Units still to place: new actions in full, unfinished slices, one slot per ongoing habit."""
    total = 0
    for _, action in ordered:
        anchor = anchors.get(action.id)
        if anchor is None:
            total += action.unit_count
        elif isinstance(action.cadence, FiniteSeries):
            total += max(action.cadence.slice_count - anchor.occurrence_no, 0)
        elif action.is_repeating:
            total += 1
    return total


def plan_reschedule(
    context: SchedulingContext,
    bundle: DreamBundle,
    existing: Iterable[OccurrenceRecord],
    config: Optional[SchedulingConfig] = None,
) -> ReschedulePlan:
    """
    Work out which occurrences to drop and which to create for an edited dream.

    ``bundle`` must already carry the new end date, budget and repeat intervals.
    Each action keeps everything up to its anchor plus every completed occurrence;
    the rest of its future is deleted and regenerated from the anchor date.
    ``existing`` should hold all of the user's occurrences so other dreams keep
    their share of the daily cap.
    """
    records = list(existing)
    ordered = bundle.ordered_actions()
    action_ids = {action.id for action in bundle.actions}

    by_action: Dict[UUID, List[OccurrenceRecord]] = {}
    for record in records:
        if record.action_id in action_ids:
            by_action.setdefault(record.action_id, []).append(record)

    plan = ReschedulePlan(dream_id=bundle.dream.id)
    for _, action in ordered:
        anchor = anchor_occurrence(by_action.get(action.id, []))
        if anchor is not None:
            plan.anchors[action.id] = anchor

    deleted_keys = set()
    for action_id, action_records in by_action.items():
        anchor = plan.anchors.get(action_id)
        for record in action_records:
            if record.is_completed:
                continue
            if anchor is None or record.occurrence_no > anchor.occurrence_no:
                plan.deleted.append(record)
                deleted_keys.add(record.key)

    kept = [record for record in records if record.key not in deleted_keys]
    anchors: Dict[UUID, Anchor] = {
        action_id: (record.occurrence_no, record.due_on) for action_id, record in plan.anchors.items()
    }
    plan.result = SchedulingOrchestrator(config).run(
        context,
        [bundle],
        kept,
        anchors=anchors,
        seedable_counts={bundle.dream.id: remaining_seedable(ordered, plan.anchors)},
    )[0]

    logger.info(
        "Reschedule plan for dream %s: %s deleted, %s anchors, %s new occurrences",
        bundle.dream.id,
        plan.deleted_count,
        len(plan.anchors),
        plan.result.scheduled_count,
    )
    return plan

