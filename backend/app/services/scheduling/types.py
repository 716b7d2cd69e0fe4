"""Plain data types shared by the scheduling passes."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID


class SchedulingInputError(ValueError):
    """Raised when the inputs cannot be scheduled at all (no partial result)."""


# ---------------------------------------------------------------------------
# Cadence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OneOff:
    pass


@dataclass(frozen=True)
class Repeating:
    interval_days: int
    until: Optional[date] = None


@dataclass(frozen=True)
class FiniteSeries:
    slice_count: int


ActionCadence = Union[OneOff, Repeating, FiniteSeries]


def cadence_from_fields(
    repeat_every_days: Optional[int],
    repeat_until_date: Optional[date] = None,
    slice_count_target: Optional[int] = None,
) -> ActionCadence:
    """Collapse the nullable action columns into one cadence variant."""
    if repeat_every_days and slice_count_target:
        raise SchedulingInputError("Action cannot both repeat and have a slice count target")
    if repeat_every_days is not None and repeat_every_days != 0:
        if repeat_every_days < 1:
            raise SchedulingInputError(f"repeat_every_days must be >= 1 (got {repeat_every_days})")
        return Repeating(interval_days=int(repeat_every_days), until=repeat_until_date)
    if slice_count_target is not None and slice_count_target != 0:
        if slice_count_target < 1:
            raise SchedulingInputError(f"slice_count_target must be >= 1 (got {slice_count_target})")
        if slice_count_target == 1:
            return OneOff()
        return FiniteSeries(slice_count=int(slice_count_target))
    return OneOff()


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulingContext:
    user_id: UUID
    timezone: str = "UTC"
    today: Optional[date] = None


@dataclass(frozen=True)
class DreamInput:
    id: UUID
    user_id: UUID
    start_date: Optional[date]
    end_date: Optional[date] = None
    daily_minutes: Optional[int] = None


@dataclass(frozen=True)
class AreaInput:
    id: UUID
    dream_id: UUID
    position: int


@dataclass(frozen=True)
class ActionInput:
    id: UUID
    area_id: UUID
    position: int
    cadence: ActionCadence = field(default_factory=OneOff)
    est_minutes: Optional[int] = None
    difficulty: str = "medium"
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def is_repeating(self) -> bool:
        return isinstance(self.cadence, Repeating)

    @property
    def unit_count(self) -> int:
        """Seedable units contributed by this action."""
        if isinstance(self.cadence, FiniteSeries):
            return self.cadence.slice_count
        return 1


@dataclass(frozen=True)
class OccurrenceRecord:
    """An occurrence already persisted by the caller."""

    action_id: UUID
    occurrence_no: int
    due_on: date
    dream_id: Optional[UUID] = None
    planned_due_on: Optional[date] = None
    completed_at: Optional[datetime] = None
    id: Optional[UUID] = None

    @property
    def key(self) -> Tuple[UUID, int]:
        return (self.action_id, self.occurrence_no)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class DreamBundle:
    """A dream with its areas and actions, as fetched by the caller."""

    dream: DreamInput
    areas: List[AreaInput]
    actions: List[ActionInput]

    def ordered_actions(self) -> List[Tuple[AreaInput, ActionInput]]:
        """Active actions ordered by (area.position, action.position)."""
        areas_by_id = {area.id: area for area in self.areas}
        pairs: List[Tuple[AreaInput, ActionInput]] = []
        for action in self.actions:
            if not action.is_active:
                continue
            area = areas_by_id.get(action.area_id)
            if area is None:
                raise SchedulingInputError(f"Action {action.id} references unknown area {action.area_id}")
            pairs.append((area, action))
        pairs.sort(key=lambda pair: (pair[0].position, pair[1].position))
        return pairs


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class WarningCode(str, enum.Enum):
    AUTO_COMPACTED = "auto_compacted"
    SEED_OUTSIDE_WINDOW = "seed_outside_window"
    CAP_ESCALATED = "cap_escalated"
    REPEAT_OVER_CAPACITY = "repeat_over_capacity"
    SEARCH_EXHAUSTED = "search_exhausted"
    OVERLOAD_UNRESOLVED = "overload_unresolved"
    PAST_HARD_END = "past_hard_end"


@dataclass(frozen=True)
class SchedulingWarning:
    code: WarningCode
    message: str
    dream_id: Optional[UUID] = None
    action_id: Optional[UUID] = None
    on: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "dream_id": str(self.dream_id) if self.dream_id else None,
            "action_id": str(self.action_id) if self.action_id else None,
            "on": self.on.isoformat() if self.on else None,
        }


@dataclass
class PlannedOccurrence:
    """An occurrence created during this run; dates may still move before persistence."""

    action_id: UUID
    area_id: UUID
    dream_id: UUID
    occurrence_no: int
    planned_due_on: date
    due_on: date
    order_key: Tuple[int, int, int]
    is_repeat: bool
    seq: int
    action_created_at: Optional[datetime] = None
    defer_count: int = 0

    @property
    def key(self) -> Tuple[UUID, int]:
        return (self.action_id, self.occurrence_no)

    def move_to(self, day: date) -> None:
        self.planned_due_on = day
        self.due_on = day

    def to_upsert(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "area_id": self.area_id,
            "dream_id": self.dream_id,
            "occurrence_no": self.occurrence_no,
            "planned_due_on": self.planned_due_on,
            "due_on": self.due_on,
            "defer_count": self.defer_count,
        }


@dataclass
class ScheduleResult:
    dream_id: UUID
    occurrences: List[PlannedOccurrence]
    warnings: List[SchedulingWarning] = field(default_factory=list)
    auto_compacted: bool = False
    too_tight: bool = False
    recommended_end: Optional[date] = None
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    success: bool = True

    @property
    def scheduled_count(self) -> int:
        return len(self.occurrences)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dream_id": str(self.dream_id),
            "success": self.success,
            "scheduled_count": self.scheduled_count,
            "warnings": [warning.to_dict() for warning in self.warnings],
            "auto_compacted": self.auto_compacted,
            "too_tight": self.too_tight,
            "recommended_end": self.recommended_end.isoformat() if self.recommended_end else None,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
        }
