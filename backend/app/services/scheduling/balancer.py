"""Post-pass that relieves days over the global cap across a user's dreams."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from app.services.scheduling.calendar import CapacityCalendar
from app.services.scheduling.types import (
    OccurrenceRecord,
    PlannedOccurrence,
    SchedulingWarning,
    WarningCode,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionOrder:
    dream_id: UUID
    area_position: int
    action_position: int
    is_repeating: bool
    # Last date a repeat of this action may occupy.
    repeat_until: Optional[date] = None


@dataclass
class BalanceOutcome:
    moved: List[Tuple[PlannedOccurrence, date, date]] = field(default_factory=list)
    unresolved: List[date] = field(default_factory=list)
    warnings: List[SchedulingWarning] = field(default_factory=list)


@dataclass
class _Slot:
    dream_id: UUID
    action_id: UUID
    occurrence_no: int
    order_key: Tuple[int, int, int]
    chain: bool
    day: date


def balance(
    calendar: CapacityCalendar,
    placements: List[PlannedOccurrence],
    *,
    existing: Iterable[OccurrenceRecord],
    action_orders: Dict[UUID, ActionOrder],
    slack_end: Dict[UUID, date],
    max_shift_days: int,
) -> BalanceOutcome:
    """
    Move occurrences created in this run off days whose global usage exceeds the cap.

    Candidates on an overloaded day are tried in priority order: one-off work before
    repeats, the most recently added action first, then the dream with the most slack
    left before its end date. A candidate only moves later, to the nearest day with
    both global and per-dream room. It never passes the next occurrence of the same
    action or the seed of the next action in its dream's order, and a repeat never
    passes its repeat-until date.
    Persisted occurrences are never moved.
    """
    outcome = BalanceOutcome()
    slots = _slots_for(placements, existing, action_orders)

    for day in calendar.overloaded_days():
        while calendar.global_load(day) > calendar.global_cap(day):
            candidates = sorted(
                (item for item in placements if item.due_on == day),
                key=lambda item: _priority(item, day, slack_end),
            )
            if not any(
                _try_move(calendar, item, slots, action_orders, max_shift_days, outcome) for item in candidates
            ):
                outcome.unresolved.append(day)
                outcome.warnings.append(
                    SchedulingWarning(
                        code=WarningCode.OVERLOAD_UNRESOLVED,
                        message=(
                            f"{calendar.global_load(day)} occurrences exceed the daily cap of "
                            f"{calendar.global_cap(day)}"
                        ),
                        on=day,
                    )
                )
                logger.info("Could not relieve overloaded day %s", day)
                break

    return outcome


def _priority(item: PlannedOccurrence, day: date, slack_end: Dict[UUID, date]) -> Tuple:
    created = item.action_created_at
    recency = (0, -created.timestamp()) if created is not None else (1, 0.0)
    end = slack_end.get(item.dream_id, day)
    slack = (end - day).days
    return (item.is_repeat, recency, -slack, -item.seq)


def _try_move(
    calendar: CapacityCalendar,
    item: PlannedOccurrence,
    slots: List[_Slot],
    action_orders: Dict[UUID, ActionOrder],
    max_shift_days: int,
    outcome: BalanceOutcome,
) -> bool:
    origin = item.due_on
    limit = origin + timedelta(days=max_shift_days)
    bound = _upper_bound(item, slots)
    if bound is not None:
        limit = min(limit, bound)
    order = action_orders.get(item.action_id)
    if item.is_repeat and order is not None and order.repeat_until is not None:
        limit = min(limit, order.repeat_until)

    day = origin + timedelta(days=1)
    while day <= limit:
        if calendar.has_capacity(day, item.dream_id):
            calendar.release(origin, item.dream_id)
            calendar.consume(day, item.dream_id)
            item.move_to(day)
            _sync_slot(slots, item)
            outcome.moved.append((item, origin, day))
            logger.debug("Moved action %s #%s from %s to %s", item.action_id, item.occurrence_no, origin, day)
            return True
        day += timedelta(days=1)
    return False


def _upper_bound(item: PlannedOccurrence, slots: List[_Slot]) -> Optional[date]:
    bound: Optional[date] = None
    is_chain = not item.is_repeat
    for slot in slots:
        limit: Optional[date] = None
        if slot.action_id == item.action_id and slot.occurrence_no > item.occurrence_no:
            limit = slot.day - timedelta(days=1)
        elif is_chain and slot.chain and slot.dream_id == item.dream_id and slot.order_key > item.order_key:
            limit = slot.day
        if limit is not None and (bound is None or limit < bound):
            bound = limit
    return bound


def _slots_for(
    placements: Iterable[PlannedOccurrence],
    existing: Iterable[OccurrenceRecord],
    action_orders: Dict[UUID, ActionOrder],
) -> List[_Slot]:
    slots: List[_Slot] = []
    for item in placements:
        slots.append(
            _Slot(
                dream_id=item.dream_id,
                action_id=item.action_id,
                occurrence_no=item.occurrence_no,
                order_key=item.order_key,
                chain=not item.is_repeat,
                day=item.due_on,
            )
        )
    for record in existing:
        order = action_orders.get(record.action_id)
        if order is None:
            continue
        slots.append(
            _Slot(
                dream_id=order.dream_id,
                action_id=record.action_id,
                occurrence_no=record.occurrence_no,
                order_key=(order.area_position, order.action_position, record.occurrence_no),
                chain=not order.is_repeating or record.occurrence_no == 1,
                day=record.due_on,
            )
        )
    return slots


def _sync_slot(slots: List[_Slot], item: PlannedOccurrence) -> None:
    for slot in slots:
        if slot.action_id == item.action_id and slot.occurrence_no == item.occurrence_no:
            slot.day = item.due_on
            return


def retarget_warnings(
    warnings: Sequence[SchedulingWarning],
    moved: Sequence[Tuple[PlannedOccurrence, date, date]],
) -> List[SchedulingWarning]:
    """
    Point placement warnings at the day their occurrence ended up on.

    An over-capacity repeat that was moved now sits within the cap, so its
    warning is dropped; other warnings follow the occurrence to its new day.
    """
    targets: Dict[Tuple[UUID, date], date] = {}
    for item, origin, destination in moved:
        for key, day in list(targets.items()):
            if key[0] == item.action_id and day == origin:
                targets[key] = destination
        targets.setdefault((item.action_id, origin), destination)

    result: List[SchedulingWarning] = []
    for warning in warnings:
        destination = targets.get((warning.action_id, warning.on)) if warning.action_id else None
        if destination is None:
            result.append(warning)
        elif warning.code != WarningCode.REPEAT_OVER_CAPACITY:
            result.append(replace(warning, on=destination))
    return result
