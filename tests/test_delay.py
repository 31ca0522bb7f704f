from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from timesheet.delay import (  # noqa: E402
    DelayRounding,
    coerce_minutes,
    compute_delay,
    is_late,
    missed_clock_in,
    raw_lateness,
    round_delay,
)

UTC = datetime.timezone.utc


def _at(hour: int, minute: int, second: int = 0) -> datetime.datetime:
    return datetime.datetime(2024, 4, 1, hour, minute, second, tzinfo=UTC)


def test_six_minutes_late_rounds_up_to_quarter_hour() -> None:
    assert compute_delay(_at(9, 0), _at(9, 6), None, DelayRounding()) == 15


def test_early_arrival_is_never_a_negative_delay() -> None:
    assert compute_delay(_at(9, 0), _at(8, 58), None, DelayRounding()) == 0


def test_on_time_arrival_has_no_delay() -> None:
    assert compute_delay(_at(9, 0), _at(9, 0), None) == 0


def test_partial_minutes_are_floored_before_rounding() -> None:
    assert compute_delay(_at(9, 0), _at(9, 0, 59), None) == 0
    assert compute_delay(_at(9, 0), _at(9, 1, 30), None) == 15


def test_floor_direction_rounds_down_to_increment() -> None:
    rounding = DelayRounding(round_to_minutes=15, direction="floor")
    assert compute_delay(_at(9, 0), _at(9, 20), None, rounding) == 15
    assert compute_delay(_at(9, 0), _at(9, 10), None, rounding) == 0


def test_custom_increment() -> None:
    rounding = DelayRounding(round_to_minutes=10)
    assert compute_delay(_at(9, 0), _at(9, 11), None, rounding) == 20


def test_positive_precomputed_delay_wins_over_timestamps() -> None:
    assert compute_delay(_at(9, 0), _at(10, 0), 7, DelayRounding()) == 7
    assert compute_delay(None, None, "12", DelayRounding()) == 12


def test_zero_or_negative_precomputed_delay_is_recomputed() -> None:
    assert compute_delay(_at(9, 0), _at(9, 6), 0) == 15
    assert compute_delay(_at(9, 0), _at(9, 6), -5) == 15


def test_missing_instants_mean_no_delay() -> None:
    assert compute_delay(None, _at(9, 30), None) == 0
    assert compute_delay(_at(9, 0), None, None) == 0


def test_naive_and_aware_instants_do_not_raise() -> None:
    naive = datetime.datetime(2024, 4, 1, 9, 30)
    assert raw_lateness(_at(9, 0), naive) is None
    assert compute_delay(_at(9, 0), naive, None) == 0


def test_grace_minutes_are_forgiven_before_rounding() -> None:
    rounding = DelayRounding(grace_minutes=5)
    assert compute_delay(_at(9, 0), _at(9, 5), None, rounding) == 0
    assert compute_delay(_at(9, 0), _at(9, 6), None, rounding) == 15


@pytest.mark.parametrize("minutes", [1, 14, 15, 16, 29, 30, 45, 61])
def test_rounding_is_idempotent(minutes: int) -> None:
    for rounding in (DelayRounding(), DelayRounding(direction="floor")):
        once = round_delay(minutes, rounding)
        assert round_delay(once, rounding) == once
        assert once % rounding.round_to_minutes == 0


def test_multiples_of_increment_are_unchanged() -> None:
    assert round_delay(30, DelayRounding()) == 30
    assert round_delay(45, DelayRounding(direction="floor")) == 45


def test_compute_delay_is_repeatable() -> None:
    first = compute_delay(_at(9, 0), _at(9, 22), None, DelayRounding())
    second = compute_delay(_at(9, 0), _at(9, 22), None, DelayRounding())
    assert first == second == 30


def test_rounding_config_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        DelayRounding(round_to_minutes=0)
    with pytest.raises(ValueError):
        DelayRounding(direction="up")
    with pytest.raises(ValueError):
        DelayRounding(grace_minutes=-1)


def test_rounding_config_from_mapping() -> None:
    assert DelayRounding.from_mapping(None) == DelayRounding()
    rounding = DelayRounding.from_mapping({"roundToMinutes": 10, "direction": "Floor"})
    assert rounding.round_to_minutes == 10
    assert rounding.direction == "floor"
    assert DelayRounding.from_mapping({"round_to_minutes": "5"}).round_to_minutes == 5
    with pytest.raises(ValueError):
        DelayRounding.from_mapping({"roundToMinutes": "abc"})


def test_coerce_minutes() -> None:
    assert coerce_minutes(None) is None
    assert coerce_minutes("") is None
    assert coerce_minutes("n/a") is None
    assert coerce_minutes(True) is None
    assert coerce_minutes(12.9) == 12
    assert coerce_minutes(" 30 ") == 30


def test_late_and_missed_clock_in_flags() -> None:
    assert is_late(_at(9, 0), _at(9, 1))
    assert not is_late(_at(9, 0), _at(8, 59))
    assert missed_clock_in(None, "NormalShift")
    assert missed_clock_in(None, "Formazione")
    assert not missed_clock_in(None, "PaidLeave")
    assert not missed_clock_in(_at(9, 0), "NormalShift")
