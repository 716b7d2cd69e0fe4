"""Tests for cadence parsing and bundle ordering."""
from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from app.services.scheduling.types import (
    ActionInput,
    AreaInput,
    DreamBundle,
    DreamInput,
    FiniteSeries,
    OneOff,
    Repeating,
    SchedulingInputError,
    SchedulingWarning,
    WarningCode,
    cadence_from_fields,
)


def test_cadence_from_fields_variants() -> None:
    until = date(2024, 2, 1)

    assert cadence_from_fields(None) == OneOff()
    assert cadence_from_fields(0, None, 0) == OneOff()
    assert cadence_from_fields(None, None, 1) == OneOff()
    assert cadence_from_fields(2, until) == Repeating(interval_days=2, until=until)
    assert cadence_from_fields(None, None, 4) == FiniteSeries(slice_count=4)


@pytest.mark.parametrize(
    "repeat_every_days, slice_count_target",
    [(1, 3), (-1, None), (None, -2)],
)
def test_cadence_from_fields_rejects_invalid_combinations(repeat_every_days, slice_count_target) -> None:
    with pytest.raises(SchedulingInputError):
        cadence_from_fields(repeat_every_days, None, slice_count_target)


def test_action_unit_counts() -> None:
    area_id = uuid4()

    assert ActionInput(id=uuid4(), area_id=area_id, position=0).unit_count == 1
    assert ActionInput(id=uuid4(), area_id=area_id, position=0, cadence=Repeating(3)).unit_count == 1
    assert ActionInput(id=uuid4(), area_id=area_id, position=0, cadence=FiniteSeries(5)).unit_count == 5


def test_ordered_actions_sorts_by_area_then_action_and_skips_inactive() -> None:
    dream = DreamInput(id=uuid4(), user_id=uuid4(), start_date=date(2024, 1, 1))
    early = AreaInput(id=uuid4(), dream_id=dream.id, position=0)
    late = AreaInput(id=uuid4(), dream_id=dream.id, position=1)
    a = ActionInput(id=uuid4(), area_id=late.id, position=0)
    b = ActionInput(id=uuid4(), area_id=early.id, position=2)
    c = ActionInput(id=uuid4(), area_id=early.id, position=1)
    hidden = ActionInput(id=uuid4(), area_id=early.id, position=0, is_active=False)
    bundle = DreamBundle(dream=dream, areas=[late, early], actions=[a, b, c, hidden])

    assert [action.id for _, action in bundle.ordered_actions()] == [c.id, b.id, a.id]


def test_ordered_actions_rejects_unknown_area() -> None:
    dream = DreamInput(id=uuid4(), user_id=uuid4(), start_date=date(2024, 1, 1))
    bundle = DreamBundle(dream=dream, areas=[], actions=[ActionInput(id=uuid4(), area_id=uuid4(), position=0)])

    with pytest.raises(SchedulingInputError):
        bundle.ordered_actions()


def test_warning_serializes_to_plain_values() -> None:
    dream_id = uuid4()
    warning = SchedulingWarning(
        code=WarningCode.CAP_ESCALATED,
        message="raised",
        dream_id=dream_id,
        on=date(2024, 1, 2),
    )

    assert warning.to_dict() == {
        "code": "cap_escalated",
        "message": "raised",
        "dream_id": str(dream_id),
        "action_id": None,
        "on": "2024-01-02",
    }
