"""Effective scheduling window with auto-compaction toward a weekly cadence."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from app.services.scheduling.types import ActionInput, SchedulingInputError


@dataclass(frozen=True)
class SchedulingWindow:
    start: date
    end: date
    recommended_end: date
    hard_end: Optional[date]
    seedable_count: int
    auto_compacted: bool

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def repeat_end(self) -> date:
        """Last date repeats may reach: the hard end when given, else the window end."""
        return self.hard_end if self.hard_end is not None else self.end


def count_seedable(actions: Iterable[ActionInput]) -> int:
    """One unit per one-off and per repeating action, one per slice of a finite series."""
    return sum(action.unit_count for action in actions if action.is_active)


def recommended_end_for(start: date, seedable_count: int, target_per_week: int) -> date:
    if seedable_count <= 0:
        return start
    weeks = math.ceil(seedable_count / target_per_week)
    return start + timedelta(days=weeks * 7 - 1)


def compute_window(
    start: date,
    hard_end: Optional[date],
    seedable_count: int,
    target_per_week: int = 3,
) -> SchedulingWindow:
    if hard_end is not None and hard_end < start:
        raise SchedulingInputError(f"End date {hard_end} is before start date {start}")

    recommended_end = recommended_end_for(start, seedable_count, target_per_week)
    if hard_end is None:
        end = recommended_end
        auto_compacted = seedable_count > 0
    else:
        end = min(hard_end, recommended_end)
        auto_compacted = recommended_end < hard_end

    return SchedulingWindow(
        start=start,
        end=end,
        recommended_end=recommended_end,
        hard_end=hard_end,
        seedable_count=seedable_count,
        auto_compacted=auto_compacted,
    )
