"""Tests for window computation and auto-compaction."""
from __future__ import annotations

from datetime import date, timedelta

import pytest

from app.services.scheduling.types import SchedulingInputError
from app.services.scheduling.window import compute_window, recommended_end_for

START = date(2024, 1, 1)


def test_no_end_date_compacts_to_target_cadence() -> None:
    window = compute_window(START, None, 3)

    assert window.end == START + timedelta(days=6)
    assert window.recommended_end == START + timedelta(days=6)
    assert window.auto_compacted is True
    assert window.repeat_end == window.end


def test_distant_end_date_is_compacted_but_kept_for_repeats() -> None:
    hard_end = START + timedelta(days=60)
    window = compute_window(START, hard_end, 4)

    assert window.end == START + timedelta(days=13)
    assert window.auto_compacted is True
    assert window.repeat_end == hard_end


def test_close_end_date_is_not_compacted() -> None:
    hard_end = START + timedelta(days=3)
    window = compute_window(START, hard_end, 6)

    assert window.end == hard_end
    assert window.auto_compacted is False
    assert window.recommended_end == START + timedelta(days=13)


def test_no_units_degenerates_to_single_day() -> None:
    window = compute_window(START, None, 0)

    assert window.start == window.end == START
    assert window.length_days == 1
    assert window.auto_compacted is False


def test_end_before_start_is_an_input_error() -> None:
    with pytest.raises(SchedulingInputError):
        compute_window(START, START - timedelta(days=1), 1)


def test_recommended_end_is_monotonic_in_unit_count() -> None:
    ends = [recommended_end_for(START, count, 3) for count in range(0, 40)]

    assert ends == sorted(ends)
    assert recommended_end_for(START, 7, 3) == START + timedelta(days=20)
