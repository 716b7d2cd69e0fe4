"""One scheduling request/response cycle over a shared capacity calendar."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from itertools import count
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.services.scheduling.balancer import ActionOrder, BalanceOutcome, balance, retarget_warnings
from app.services.scheduling.calendar import CapacityCalendar, goal_base_cap
from app.services.scheduling.config import SchedulingConfig
from app.services.scheduling.repeats import existing_dates_by_action, expand_repeats
from app.services.scheduling.seeder import SeedOutcome, build_seed_units, seed_with_fallback
from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    DreamBundle,
    OccurrenceRecord,
    PlannedOccurrence,
    Repeating,
    ScheduleResult,
    SchedulingContext,
    SchedulingInputError,
    SchedulingWarning,
    WarningCode,
)
from app.services.scheduling.window import SchedulingWindow, compute_window, count_seedable

logger = logging.getLogger(__name__)

Anchor = Tuple[int, date]


class SchedulingState(str, enum.Enum):
    COMPUTE_WINDOW = "compute_window"
    BUILD_CALENDAR = "build_calendar"
    SEED = "seed"
    EXPAND_REPEATS = "expand_repeats"
    BALANCE = "balance"
    FINALIZE = "finalize"


@dataclass
class DreamRun:
    bundle: DreamBundle
    ordered: List[Tuple[AreaInput, ActionInput]]
    window: Optional[SchedulingWindow] = None
    seed: Optional[SeedOutcome] = None
    placements: List[PlannedOccurrence] = field(default_factory=list)
    warnings: List[SchedulingWarning] = field(default_factory=list)

    @property
    def dream_id(self) -> UUID:
        return self.bundle.dream.id


@dataclass
class SchedulingRun:
    context: SchedulingContext
    config: SchedulingConfig
    today: date
    dreams: List[DreamRun]
    existing: List[OccurrenceRecord]
    anchors: Dict[UUID, Anchor] = field(default_factory=dict)
    seedable_counts: Dict[UUID, int] = field(default_factory=dict)
    calendar: Optional[CapacityCalendar] = None
    balance: Optional[BalanceOutcome] = None
    results: List[ScheduleResult] = field(default_factory=list)
    history: List[SchedulingState] = field(default_factory=list)
    seq: Iterator[int] = field(default_factory=lambda: count(1))

    @property
    def state(self) -> Optional[SchedulingState]:
        return self.history[-1] if self.history else None

    @property
    def placements(self) -> List[PlannedOccurrence]:
        return [item for dream in self.dreams for item in dream.placements]


def resolve_today(context: SchedulingContext) -> date:
    """The calendar's "today" in the user's timezone."""
    if context.today is not None:
        return context.today
    try:
        zone = ZoneInfo(context.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SchedulingInputError(f"Unknown timezone {context.timezone!r}") from exc
    return datetime.now(zone).date()


class SchedulingOrchestrator:
    """
    Runs ComputeWindow -> BuildCalendar -> Seed -> ExpandRepeats -> Balance -> Finalize.

    The orchestrator owns the calendar for the duration of one ``run`` call; every
    dream in the call is placed against that one calendar so the global cap holds
    across them. Infeasibility never raises: results carry ``too_tight`` and warnings.
    """

    def __init__(self, config: Optional[SchedulingConfig] = None) -> None:
        self.config = config or SchedulingConfig()

    def run(
        self,
        context: SchedulingContext,
        bundles: Sequence[DreamBundle],
        existing: Iterable[OccurrenceRecord] = (),
        *,
        anchors: Optional[Dict[UUID, Anchor]] = None,
        seedable_counts: Optional[Dict[UUID, int]] = None,
    ) -> List[ScheduleResult]:
        return self.execute(
            context, bundles, existing, anchors=anchors, seedable_counts=seedable_counts
        ).results

    def execute(
        self,
        context: SchedulingContext,
        bundles: Sequence[DreamBundle],
        existing: Iterable[OccurrenceRecord] = (),
        *,
        anchors: Optional[Dict[UUID, Anchor]] = None,
        seedable_counts: Optional[Dict[UUID, int]] = None,
    ) -> SchedulingRun:
        """Run every state in order and return the whole run, intermediate state included."""
        run = self._prepare(context, bundles, existing)
        run.anchors = dict(anchors or {})
        run.seedable_counts = dict(seedable_counts or {})
        for state, step in self._steps():
            run.history.append(state)
            logger.debug("Scheduling state %s", state.value)
            step(run)
        return run

    def _steps(self) -> List[Tuple[SchedulingState, Callable[[SchedulingRun], None]]]:
        return [
            (SchedulingState.COMPUTE_WINDOW, self._compute_windows),
            (SchedulingState.BUILD_CALENDAR, self._build_calendar),
            (SchedulingState.SEED, self._seed),
            (SchedulingState.EXPAND_REPEATS, self._expand),
            (SchedulingState.BALANCE, self._balance),
            (SchedulingState.FINALIZE, self._finalize),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _prepare(
        self,
        context: SchedulingContext,
        bundles: Sequence[DreamBundle],
        existing: Iterable[OccurrenceRecord],
    ) -> SchedulingRun:
        if not bundles:
            raise SchedulingInputError("No dream to schedule")

        dreams: List[DreamRun] = []
        action_dreams: Dict[UUID, UUID] = {}
        for bundle in bundles:
            dream = bundle.dream
            if dream is None:
                raise SchedulingInputError("Dream data is missing")
            if dream.start_date is None:
                raise SchedulingInputError(f"Dream {dream.id} has no start date")
            if dream.end_date is not None and dream.end_date < dream.start_date:
                raise SchedulingInputError(f"Dream {dream.id} ends before it starts")
            for area in bundle.areas:
                if area.dream_id != dream.id:
                    raise SchedulingInputError(f"Area {area.id} does not belong to dream {dream.id}")
            ordered = bundle.ordered_actions()
            if not ordered:
                raise SchedulingInputError(f"Dream {dream.id} has no active actions to schedule")
            for _, action in ordered:
                if action.id in action_dreams:
                    raise SchedulingInputError(f"Action {action.id} appears more than once")
                action_dreams[action.id] = dream.id
            dreams.append(DreamRun(bundle=bundle, ordered=ordered))

        records = [
            replace(record, dream_id=action_dreams[record.action_id])
            if record.dream_id is None and record.action_id in action_dreams
            else record
            for record in existing
        ]
        return SchedulingRun(
            context=context,
            config=self.config,
            today=resolve_today(context),
            dreams=dreams,
            existing=records,
        )

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _compute_windows(self, run: SchedulingRun) -> None:
        for dream_run in run.dreams:
            dream = dream_run.bundle.dream
            start = max(dream.start_date, run.today)
            seedable = run.seedable_counts.get(
                dream.id, count_seedable(action for _, action in dream_run.ordered)
            )
            hard_end = dream.end_date
            window = compute_window(
                start,
                max(hard_end, start) if hard_end is not None else None,
                seedable,
                run.config.target_per_week,
            )
            if hard_end is not None and hard_end < start:
                window = replace(window, hard_end=hard_end)
            dream_run.window = window
            if window.auto_compacted:
                dream_run.warnings.append(
                    SchedulingWarning(
                        code=WarningCode.AUTO_COMPACTED,
                        message=f"Window compacted to end on {window.end} ({run.config.target_per_week}/week)",
                        dream_id=dream.id,
                    )
                )

    def _build_calendar(self, run: SchedulingRun) -> None:
        calendar = CapacityCalendar(run.config)
        calendar.reserve_existing(run.existing)
        for dream_run in run.dreams:
            dream = dream_run.bundle.dream
            cap = goal_base_cap(
                dream.daily_minutes,
                (action.est_minutes for _, action in dream_run.ordered),
                run.config,
            )
            calendar.set_goal_base_cap(dream.id, cap)
        run.calendar = calendar

    def _seed(self, run: SchedulingRun) -> None:
        existing = {record.key: record for record in run.existing}
        for dream_run in run.dreams:
            units = build_seed_units(dream_run.ordered)
            outcome = seed_with_fallback(
                dream_run.dream_id,
                units,
                dream_run.window,
                run.calendar,
                run.config,
                existing=existing,
                seq=run.seq,
            )
            dream_run.seed = outcome
            dream_run.placements.extend(outcome.placed)
            dream_run.warnings.extend(outcome.warnings)

    def _expand(self, run: SchedulingRun) -> None:
        dates_by_action = existing_dates_by_action(run.existing)
        for dream_run in run.dreams:
            window = dream_run.window
            for area, action in dream_run.ordered:
                if not action.is_repeating:
                    continue
                anchor = run.anchors.get(action.id)
                if anchor is None:
                    seed_date = dream_run.seed.seed_dates.get(action.id)
                    if seed_date is None:
                        continue
                    anchor = (1, seed_date)
                outcome = expand_repeats(
                    dream_run.dream_id,
                    area,
                    action,
                    anchor_no=anchor[0],
                    anchor_date=anchor[1],
                    horizon_end=window.repeat_end,
                    not_before=window.start,
                    calendar=run.calendar,
                    existing_dates=dates_by_action.get(action.id, {}),
                    seq=run.seq,
                )
                dream_run.placements.extend(outcome.placed)
                dream_run.warnings.extend(outcome.warnings)

    def _balance(self, run: SchedulingRun) -> None:
        action_orders: Dict[UUID, ActionOrder] = {}
        slack_end: Dict[UUID, date] = {}
        for dream_run in run.dreams:
            slack_end[dream_run.dream_id] = dream_run.window.repeat_end
            for area, action in dream_run.ordered:
                repeat_until = None
                if isinstance(action.cadence, Repeating):
                    repeat_until = dream_run.window.repeat_end
                    if action.cadence.until is not None:
                        repeat_until = min(repeat_until, action.cadence.until)
                action_orders[action.id] = ActionOrder(
                    dream_id=dream_run.dream_id,
                    area_position=area.position,
                    action_position=action.position,
                    is_repeating=action.is_repeating,
                    repeat_until=repeat_until,
                )
        run.balance = balance(
            run.calendar,
            run.placements,
            existing=run.existing,
            action_orders=action_orders,
            slack_end=slack_end,
            max_shift_days=run.config.max_search_days,
        )

    def _finalize(self, run: SchedulingRun) -> None:
        persisted = {record.key for record in run.existing}
        unresolved = set(run.balance.unresolved) if run.balance else set()
        moved = run.balance.moved if run.balance else []
        calendar = run.calendar

        for dream_run in run.dreams:
            window = dream_run.window
            dream_id = dream_run.dream_id
            seen = set(persisted)
            occurrences: List[PlannedOccurrence] = []
            for item in dream_run.placements:
                if item.key in seen:
                    continue
                seen.add(item.key)
                occurrences.append(item)
            occurrences.sort(key=lambda item: (item.due_on, item.order_key))

            warnings = retarget_warnings(dream_run.warnings, moved)
            over_cap_days = set()
            for item in occurrences:
                day = item.due_on
                if (
                    day in unresolved
                    or calendar.global_load(day) > calendar.global_cap(day)
                    or calendar.goal_load(day, dream_id) > calendar.goal_cap(day, dream_id)
                ):
                    over_cap_days.add(day)
            for warning in run.balance.warnings if run.balance else []:
                if warning.on in over_cap_days:
                    warnings.append(replace(warning, dream_id=dream_id))

            late = [
                item for item in occurrences if window.hard_end is not None and item.due_on > window.hard_end
            ]
            for item in late:
                warnings.append(
                    SchedulingWarning(
                        code=WarningCode.PAST_HARD_END,
                        message=f"Occurrence #{item.occurrence_no} falls after the end date {window.hard_end}",
                        dream_id=dream_id,
                        action_id=item.action_id,
                        on=item.due_on,
                    )
                )
            exhausted = any(warning.code == WarningCode.SEARCH_EXHAUSTED for warning in warnings)
            too_tight = bool(late) or exhausted or bool(over_cap_days)

            recommended_end = window.recommended_end
            seeds = [item.due_on for item in occurrences if not item.is_repeat]
            if seeds:
                recommended_end = max(recommended_end, max(seeds))
            if too_tight and window.hard_end is not None and recommended_end <= window.hard_end:
                recommended_end = window.hard_end + timedelta(days=7)

            result = ScheduleResult(
                dream_id=dream_id,
                occurrences=occurrences,
                warnings=warnings,
                auto_compacted=window.auto_compacted,
                too_tight=too_tight,
                recommended_end=recommended_end,
                window_start=window.start,
                window_end=window.end,
            )
            run.results.append(result)
            logger.info(
                "Scheduled dream %s: %s occurrences, window %s..%s, auto_compacted=%s, too_tight=%s",
                dream_id,
                result.scheduled_count,
                window.start,
                window.end,
                result.auto_compacted,
                result.too_tight,
            )


def schedule_dreams(
    context: SchedulingContext,
    bundles: Sequence[DreamBundle],
    existing: Iterable[OccurrenceRecord] = (),
    config: Optional[SchedulingConfig] = None,
) -> List[ScheduleResult]:
    """Schedule several of one user's dreams against one shared calendar."""
    return SchedulingOrchestrator(config).run(context, bundles, existing)


def schedule_dream(
    context: SchedulingContext,
    bundle: DreamBundle,
    existing: Iterable[OccurrenceRecord] = (),
    config: Optional[SchedulingConfig] = None,
) -> ScheduleResult:
    return schedule_dreams(context, [bundle], existing, config)[0]
