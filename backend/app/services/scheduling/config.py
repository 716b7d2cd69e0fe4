"""Tunable scheduling parameters."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable

SUNDAY = 6


@dataclass(frozen=True)
class SchedulingConfig:
    global_daily_cap: int = 5
    per_goal_daily_cap: int = 1
    per_goal_cap_ceiling: int = 3
    target_per_week: int = 3
    rest_days: FrozenSet[int] = field(default_factory=lambda: frozenset({SUNDAY}))
    min_seed_gap_days: int = 1
    max_search_days: int = 365
    default_est_minutes: int = 30

    def __post_init__(self) -> None:
        if self.global_daily_cap < 1:
            raise ValueError("global_daily_cap must be >= 1")
        if self.per_goal_daily_cap < 1:
            raise ValueError("per_goal_daily_cap must be >= 1")
        if self.per_goal_cap_ceiling < self.per_goal_daily_cap:
            raise ValueError("per_goal_cap_ceiling must be >= per_goal_daily_cap")
        if self.target_per_week < 1:
            raise ValueError("target_per_week must be >= 1")
        if self.min_seed_gap_days < 0:
            raise ValueError("min_seed_gap_days must be >= 0")
        if any(day not in range(7) for day in self.rest_days):
            raise ValueError("rest_days must be weekday numbers 0-6")
        if len(self.rest_days) >= 7:
            raise ValueError("at least one weekday must be schedulable")

    @classmethod
    def from_settings(cls, settings) -> "SchedulingConfig":
        return cls(
            global_daily_cap=settings.schedule_global_daily_cap,
            per_goal_daily_cap=settings.schedule_per_goal_daily_cap,
            per_goal_cap_ceiling=settings.schedule_per_goal_cap_ceiling,
            target_per_week=settings.schedule_target_per_week,
            rest_days=_as_weekdays(settings.schedule_rest_days),
            min_seed_gap_days=settings.schedule_min_seed_gap_days,
            max_search_days=settings.schedule_max_search_days,
        )


def _as_weekdays(values: Iterable[int]) -> FrozenSet[int]:
    return frozenset(int(value) for value in values)
