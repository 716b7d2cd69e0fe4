"""First-occurrence placement for every action of a dream."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from itertools import count
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID

from app.services.scheduling.calendar import CapacityCalendar, roll_forward
from app.services.scheduling.config import SchedulingConfig
from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    OccurrenceRecord,
    PlannedOccurrence,
    SchedulingWarning,
    WarningCode,
)
from app.services.scheduling.window import SchedulingWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedUnit:
    area: AreaInput
    action: ActionInput
    occurrence_no: int

    @property
    def key(self) -> Tuple[UUID, int]:
        return (self.action.id, self.occurrence_no)

    @property
    def order_key(self) -> Tuple[int, int, int]:
        return (self.area.position, self.action.position, self.occurrence_no)


@dataclass
class SeedOutcome:
    placed: List[PlannedOccurrence] = field(default_factory=list)
    seed_dates: Dict[UUID, date] = field(default_factory=dict)
    overflow: List[PlannedOccurrence] = field(default_factory=list)
    warnings: List[SchedulingWarning] = field(default_factory=list)
    escalated_cap: Optional[int] = None


def build_seed_units(ordered_actions: Sequence[Tuple[AreaInput, ActionInput]]) -> List[SeedUnit]:
    """Expand position-ordered actions into units; a finite series yields one per slice."""
    units: List[SeedUnit] = []
    for area, action in ordered_actions:
        for occurrence_no in range(1, action.unit_count + 1):
            units.append(SeedUnit(area=area, action=action, occurrence_no=occurrence_no))
    return units


def target_day(window: SchedulingWindow, index: int, total: int) -> date:
    """Evenly spread unit ``index`` of ``total`` across the window (round half up)."""
    if total <= 0:
        return window.start
    offset = int(index * window.length_days / total + 0.5)
    return window.start + timedelta(days=offset)


def seed_dream(
    dream_id: UUID,
    units: Sequence[SeedUnit],
    window: SchedulingWindow,
    calendar: CapacityCalendar,
    config: SchedulingConfig,
    *,
    existing: Dict[Tuple[UUID, int], OccurrenceRecord],
    min_gap_days: int,
    seq: Iterator[int],
) -> SeedOutcome:
    outcome = SeedOutcome()
    gap = timedelta(days=min_gap_days)
    previous: Optional[date] = None
    total = len(units)

    for index, unit in enumerate(units):
        persisted = existing.get(unit.key)
        if persisted is not None:
            previous = persisted.due_on if previous is None else max(previous, persisted.due_on)
            if unit.occurrence_no == 1:
                outcome.seed_dates[unit.action.id] = persisted.due_on
            continue

        earliest = max(target_day(window, index, total), window.start)
        if previous is not None:
            earliest = max(earliest, previous + gap)

        day = _first_open_day(calendar, dream_id, earliest, window.end, config.max_search_days)
        if day is None:
            day = roll_forward(earliest, calendar)
            calendar.consume(day, dream_id, force=True)
            outcome.warnings.append(
                SchedulingWarning(
                    code=WarningCode.SEARCH_EXHAUSTED,
                    message=f"No capacity found within {config.max_search_days} days; placed over capacity",
                    dream_id=dream_id,
                    action_id=unit.action.id,
                    on=day,
                )
            )
        else:
            calendar.consume(day, dream_id)

        occurrence = PlannedOccurrence(
            action_id=unit.action.id,
            area_id=unit.area.id,
            dream_id=dream_id,
            occurrence_no=unit.occurrence_no,
            planned_due_on=day,
            due_on=day,
            order_key=unit.order_key,
            is_repeat=False,
            seq=next(seq),
            action_created_at=unit.action.created_at,
        )
        outcome.placed.append(occurrence)
        if unit.occurrence_no == 1:
            outcome.seed_dates[unit.action.id] = day
        if day > window.end:
            outcome.overflow.append(occurrence)
        previous = day
        logger.debug("Seeded action %s #%s on %s", unit.action.id, unit.occurrence_no, day)

    return outcome


def seed_with_fallback(
    dream_id: UUID,
    units: Sequence[SeedUnit],
    window: SchedulingWindow,
    calendar: CapacityCalendar,
    config: SchedulingConfig,
    *,
    existing: Dict[Tuple[UUID, int], OccurrenceRecord],
    seq: Optional[Iterator[int]] = None,
) -> SeedOutcome:
    """
    Seed with the configured gap; when units spill past the window, retry without the
    gap and with the dream's cap escalated across the window, one step at a time.

    The last attempt is kept when nothing fits; spilled units are reported as warnings.
    """
    seq = seq if seq is not None else count(1)
    state = calendar.snapshot()
    outcome = seed_dream(
        dream_id, units, window, calendar, config,
        existing=existing, min_gap_days=config.min_seed_gap_days, seq=seq,
    )

    if outcome.overflow:
        base_cap = calendar.goal_cap(roll_forward(window.start, calendar), dream_id)
        for cap in range(base_cap, config.per_goal_cap_ceiling + 1):
            calendar.restore(state)
            if cap > base_cap:
                _escalate_window(calendar, dream_id, window, cap)
            outcome = seed_dream(
                dream_id, units, window, calendar, config,
                existing=existing, min_gap_days=0, seq=seq,
            )
            if cap > base_cap:
                outcome.escalated_cap = cap
            if not outcome.overflow:
                break

        if outcome.escalated_cap:
            outcome.warnings.append(
                SchedulingWarning(
                    code=WarningCode.CAP_ESCALATED,
                    message=f"Daily cap raised to {outcome.escalated_cap} to fit the window",
                    dream_id=dream_id,
                )
            )

    for occurrence in outcome.overflow:
        outcome.warnings.append(
            SchedulingWarning(
                code=WarningCode.SEED_OUTSIDE_WINDOW,
                message=f"Placed after window end {window.end}",
                dream_id=dream_id,
                action_id=occurrence.action_id,
                on=occurrence.due_on,
            )
        )
    return outcome


def _first_open_day(
    calendar: CapacityCalendar,
    dream_id: UUID,
    earliest: date,
    window_end: date,
    max_search_days: int,
) -> Optional[date]:
    day = earliest
    limit = max(earliest, window_end) + timedelta(days=max_search_days)
    while day <= limit:
        if calendar.has_capacity(day, dream_id):
            return day
        day += timedelta(days=1)
    return None


def _escalate_window(calendar: CapacityCalendar, dream_id: UUID, window: SchedulingWindow, cap: int) -> None:
    day = window.start
    while day <= window.end:
        calendar.escalate_per_goal_cap(dream_id, day, cap)
        day += timedelta(days=1)
