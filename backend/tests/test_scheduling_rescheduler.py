"""Tests for regenerating a dream's future from per-action anchors."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from app.services.scheduling import (
    ActionInput,
    AreaInput,
    DreamBundle,
    DreamInput,
    FiniteSeries,
    OccurrenceRecord,
    OneOff,
    Repeating,
    SchedulingContext,
    plan_reschedule,
)
from app.services.scheduling.rescheduler import anchor_occurrence, remaining_seedable

USER = uuid4()
START = date(2024, 1, 1)  # Monday
DONE = datetime(2024, 1, 3, 20, 0, tzinfo=timezone.utc)


def _day(offset: int) -> date:
    return START + timedelta(days=offset)


def _bundle(cadence, *, end=None) -> DreamBundle:
    dream = DreamInput(id=uuid4(), user_id=USER, start_date=START, end_date=end)
    area = AreaInput(id=uuid4(), dream_id=dream.id, position=0)
    action = ActionInput(id=uuid4(), area_id=area.id, position=0, cadence=cadence)
    return DreamBundle(dream=dream, areas=[area], actions=[action])


def _with_cadence(bundle: DreamBundle, cadence) -> DreamBundle:
    action = bundle.actions[0]
    changed = ActionInput(id=action.id, area_id=action.area_id, position=action.position, cadence=cadence)
    return DreamBundle(dream=bundle.dream, areas=bundle.areas, actions=[changed])


def _daily_records(bundle: DreamBundle, count: int, completed: int):
    action = bundle.actions[0]
    return [
        OccurrenceRecord(
            action_id=action.id,
            occurrence_no=number,
            due_on=_day(number - 1),
            dream_id=bundle.dream.id,
            completed_at=DONE if number <= completed else None,
            id=uuid4(),
        )
        for number in range(1, count + 1)
    ]


def test_cadence_change_regenerates_after_last_completed_occurrence() -> None:
    original = _bundle(Repeating(1), end=_day(29))
    existing = _daily_records(original, count=6, completed=3)
    edited = _with_cadence(original, Repeating(2))

    plan = plan_reschedule(SchedulingContext(user_id=USER, today=_day(3)), edited, existing)

    assert plan.anchors[edited.actions[0].id].occurrence_no == 3
    assert sorted(record.occurrence_no for record in plan.deleted) == [4, 5, 6]
    assert all(record.completed_at is None for record in plan.deleted)
    dates = [item.due_on for item in plan.result.occurrences]
    assert [item.occurrence_no for item in plan.result.occurrences] == list(range(4, 17))
    assert dates[:4] == [_day(4), _day(7), _day(8), _day(10)]
    assert all(day.weekday() != 6 for day in dates)
    assert max(dates) <= _day(29)


def test_completed_occurrences_are_never_deleted() -> None:
    bundle = _bundle(Repeating(1), end=_day(10))
    existing = _daily_records(bundle, count=5, completed=2)

    plan = plan_reschedule(SchedulingContext(user_id=USER, today=_day(2)), bundle, existing)
    deleted = {record.occurrence_no for record in plan.deleted}

    assert deleted == {3, 4, 5}
    assert {1, 2}.isdisjoint(deleted)
    assert all(item.occurrence_no > 2 for item in plan.result.occurrences)


def test_without_completions_the_first_occurrence_is_the_anchor() -> None:
    bundle = _bundle(Repeating(1), end=_day(29))
    existing = _daily_records(bundle, count=5, completed=0)
    shortened = DreamBundle(
        dream=DreamInput(id=bundle.dream.id, user_id=USER, start_date=START, end_date=_day(2)),
        areas=bundle.areas,
        actions=bundle.actions,
    )

    plan = plan_reschedule(SchedulingContext(user_id=USER, today=START), shortened, existing)

    assert plan.deleted_count == 4
    assert [(item.occurrence_no, item.due_on) for item in plan.result.occurrences] == [(2, _day(1)), (3, _day(2))]


def test_new_action_without_occurrences_is_seeded() -> None:
    bundle = _bundle(OneOff())
    existing = [
        OccurrenceRecord(
            action_id=bundle.actions[0].id,
            occurrence_no=1,
            due_on=START,
            dream_id=bundle.dream.id,
            completed_at=DONE,
            id=uuid4(),
        )
    ]
    added = ActionInput(id=uuid4(), area_id=bundle.areas[0].id, position=1)
    bundle.actions.append(added)

    plan = plan_reschedule(SchedulingContext(user_id=USER, today=_day(1)), bundle, existing)

    assert plan.deleted_count == 0
    assert [item.action_id for item in plan.result.occurrences] == [added.id]
    assert plan.result.occurrences[0].due_on >= _day(1)


def test_other_dreams_keep_their_capacity_during_reschedule() -> None:
    bundle = _bundle(Repeating(1), end=_day(5))
    existing = _daily_records(bundle, count=1, completed=0)
    other_dream = uuid4()
    existing += [
        OccurrenceRecord(action_id=uuid4(), occurrence_no=1, due_on=_day(1), dream_id=other_dream)
        for _ in range(5)
    ]

    plan = plan_reschedule(SchedulingContext(user_id=USER, today=START), bundle, existing)
    by_day = {item.due_on for item in plan.result.occurrences}

    assert _day(1) in by_day
    assert plan.result.too_tight is True


def test_anchor_and_remaining_units() -> None:
    bundle = _bundle(FiniteSeries(4))
    action = bundle.actions[0]
    records = _daily_records(bundle, count=4, completed=1)

    anchor = anchor_occurrence(records)

    assert anchor.occurrence_no == 1
    assert anchor_occurrence([]) is None
    assert remaining_seedable(bundle.ordered_actions(), {action.id: anchor}) == 3
    assert remaining_seedable(bundle.ordered_actions(), {}) == 4
