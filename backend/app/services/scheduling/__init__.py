"""Deterministic dream scheduling: window, capacity, seeding, repeats and balancing."""

from app.services.scheduling.config import SchedulingConfig
from app.services.scheduling.orchestrator import SchedulingOrchestrator, schedule_dream, schedule_dreams
from app.services.scheduling.rescheduler import ReschedulePlan, plan_reschedule
from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    DreamBundle,
    DreamInput,
    FiniteSeries,
    OccurrenceRecord,
    OneOff,
    PlannedOccurrence,
    Repeating,
    ScheduleResult,
    SchedulingContext,
    SchedulingInputError,
    SchedulingWarning,
    WarningCode,
    cadence_from_fields,
)

__all__ = [
    "ActionInput",
    "AreaInput",
    "DreamBundle",
    "DreamInput",
    "FiniteSeries",
    "OccurrenceRecord",
    "OneOff",
    "PlannedOccurrence",
    "Repeating",
    "ReschedulePlan",
    "ScheduleResult",
    "SchedulingConfig",
    "SchedulingContext",
    "SchedulingInputError",
    "SchedulingOrchestrator",
    "SchedulingWarning",
    "WarningCode",
    "cadence_from_fields",
    "plan_reschedule",
    "schedule_dream",
    "schedule_dreams",
]
