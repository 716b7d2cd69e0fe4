"""Day-indexed capacity ledger shared by every pass of one scheduling run."""
from __future__ import annotations

import copy
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from app.services.scheduling.config import SchedulingConfig
from app.services.scheduling.types import OccurrenceRecord

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


class CapacityCalendar:
    """
    Global and per-dream daily capacity.

    Usage is tracked sparsely, so every date of an unbounded horizon starts at the
    configured caps. Rest days have zero capacity for everyone and escalation never
    relaxes them. Consumption may be forced past a cap; the balancer later looks for
    days whose global usage exceeds the cap.
    """

    def __init__(self, config: SchedulingConfig) -> None:
        self.config = config
        self._global_used: Dict[date, int] = {}
        self._goal_used: Dict[date, Dict[Optional[UUID], int]] = {}
        self._base_caps: Dict[UUID, int] = {}
        self._escalated: Dict[Tuple[UUID, date], int] = {}

    # -- caps ---------------------------------------------------------------

    def is_rest_day(self, day: date) -> bool:
        return day.weekday() in self.config.rest_days

    def set_goal_base_cap(self, goal_id: UUID, cap: int) -> int:
        bounded = max(1, min(int(cap), self.config.per_goal_cap_ceiling))
        self._base_caps[goal_id] = bounded
        return bounded

    def global_cap(self, day: date) -> int:
        return 0 if self.is_rest_day(day) else self.config.global_daily_cap

    def goal_cap(self, day: date, goal_id: UUID) -> int:
        if self.is_rest_day(day):
            return 0
        base = self._base_caps.get(goal_id, self.config.per_goal_daily_cap)
        return self._escalated.get((goal_id, day), base)

    def escalate_per_goal_cap(self, goal_id: UUID, day: date, new_cap: int) -> bool:
        """Raise the dream's cap for one date, bounded by the configured ceiling."""
        if self.is_rest_day(day):
            return False
        target = min(int(new_cap), self.config.per_goal_cap_ceiling)
        if target <= self.goal_cap(day, goal_id):
            return False
        self._escalated[(goal_id, day)] = target
        logger.debug("Escalated cap for dream %s on %s to %s", goal_id, day, target)
        return True

    def escalations(self, goal_id: UUID) -> Dict[date, int]:
        return {day: cap for (gid, day), cap in self._escalated.items() if gid == goal_id}

    # -- usage --------------------------------------------------------------

    def global_load(self, day: date) -> int:
        return self._global_used.get(day, 0)

    def goal_load(self, day: date, goal_id: UUID) -> int:
        return self._goal_used.get(day, {}).get(goal_id, 0)

    def global_remaining(self, day: date) -> int:
        return self.global_cap(day) - self.global_load(day)

    def goal_remaining(self, day: date, goal_id: UUID) -> int:
        return self.goal_cap(day, goal_id) - self.goal_load(day, goal_id)

    def has_capacity(self, day: date, goal_id: UUID) -> bool:
        if self.is_rest_day(day):
            return False
        return self.global_remaining(day) > 0 and self.goal_remaining(day, goal_id) > 0

    def consume(self, day: date, goal_id: Optional[UUID], *, force: bool = False) -> None:
        if not force and (goal_id is None or not self.has_capacity(day, goal_id)):
            raise ValueError(f"No capacity on {day} for dream {goal_id}")
        self._global_used[day] = self._global_used.get(day, 0) + 1
        per_goal = self._goal_used.setdefault(day, {})
        per_goal[goal_id] = per_goal.get(goal_id, 0) + 1

    def release(self, day: date, goal_id: Optional[UUID]) -> None:
        per_goal = self._goal_used.get(day, {})
        if per_goal.get(goal_id, 0) <= 0:
            raise ValueError(f"Nothing consumed on {day} for dream {goal_id}")
        per_goal[goal_id] -= 1
        self._global_used[day] -= 1

    def reserve_existing(self, occurrences: Iterable[OccurrenceRecord]) -> int:
        """Count already-persisted occurrences against the ledger."""
        count = 0
        for occurrence in occurrences:
            self.consume(occurrence.due_on, occurrence.dream_id, force=True)
            count += 1
        return count

    def overloaded_days(self) -> List[date]:
        return sorted(day for day, used in self._global_used.items() if used > self.global_cap(day))

    # -- rollback -----------------------------------------------------------

    def snapshot(self) -> Tuple:
        return copy.deepcopy((self._global_used, self._goal_used, self._base_caps, self._escalated))

    def restore(self, state: Tuple) -> None:
        global_used, goal_used, base_caps, escalated = copy.deepcopy(state)
        self._global_used = global_used
        self._goal_used = goal_used
        self._base_caps = base_caps
        self._escalated = escalated


def roll_forward(day: date, calendar: CapacityCalendar) -> date:
    """Return the first non-rest day on or after ``day``."""
    while calendar.is_rest_day(day):
        day += ONE_DAY
    return day


def acquire_with_escalation(calendar: CapacityCalendar, day: date, goal_id: UUID) -> Tuple[bool, Optional[int]]:
    """
    Consume one slot on ``day``, raising the dream's cap one step at a time if needed.

    Returns ``(placed, escalated_to)``. ``escalated_to`` is the cap that made room, or
    None when no escalation was needed. Nothing is consumed when ``placed`` is False.
    """
    if calendar.has_capacity(day, goal_id):
        calendar.consume(day, goal_id)
        return True, None
    if calendar.is_rest_day(day) or calendar.global_remaining(day) <= 0:
        return False, None
    cap = calendar.goal_cap(day, goal_id)
    while cap < calendar.config.per_goal_cap_ceiling:
        cap += 1
        calendar.escalate_per_goal_cap(goal_id, day, cap)
        if calendar.has_capacity(day, goal_id):
            calendar.consume(day, goal_id)
            return True, cap
    return False, None


def goal_base_cap(daily_minutes: Optional[int], est_minutes: Iterable[Optional[int]], config: SchedulingConfig) -> int:
    """Per-dream daily cap implied by a daily time budget."""
    if not daily_minutes:
        return config.per_goal_daily_cap
    durations = [value or config.default_est_minutes for value in est_minutes]
    if not durations:
        return config.per_goal_daily_cap
    average = sum(durations) / len(durations)
    fits = int(daily_minutes // average) if average > 0 else config.per_goal_daily_cap
    return max(1, min(fits, config.per_goal_cap_ceiling))
