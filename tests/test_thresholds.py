from datetime import timedelta

import pytest

from rmmwatch.errors import ConfigurationError
from rmmwatch.runtime.thresholds import Measurement, compare, match_result_code
from rmmwatch.runtime.windowing import DurationTracker, make_tracker
from rmmwatch.schemas.common import (
    ByteUnit,
    CapacityUnit,
    Operator,
    RateUnit,
    ResultCodeOperator,
    ThresholdValue,
)
from rmmwatch.schemas.conditions import ResultCodeCriterion

from conftest import T0


def test_byte_units_normalize_to_base_value():
    assert ThresholdValue(magnitude=1, unit=ByteUnit.GIGA).base_value == 1073741824
    assert ThresholdValue(magnitude=2, unit=CapacityUnit.MEGABYTE).base_value == 2 * 1024 ** 2
    assert ThresholdValue(magnitude=1, unit=RateUnit.KIBPS).base_value == 1024


def test_one_gigabyte_sample_equals_one_giga_threshold():
    threshold = ThresholdValue(magnitude=1, unit=ByteUnit.GIGA)
    assert compare(Measurement.bytes(1073741824), Operator.EQ, threshold)
    assert not compare(Measurement.bytes(1073741823), Operator.GTE, threshold)


def test_percent_threshold_ignores_percent_capacity_unit():
    threshold = ThresholdValue(magnitude=20, unit=CapacityUnit.PERCENT)
    assert threshold.base_value == 20
    assert compare(Measurement.percent(19.5), Operator.LT, threshold)


def test_scale_mismatch_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        compare(Measurement.percent(50), Operator.GT, ThresholdValue(magnitude=1, unit=ByteUnit.MEGA))
    with pytest.raises(ConfigurationError):
        compare(Measurement.bytes(50), Operator.GT, ThresholdValue(magnitude=1, unit=RateUnit.MIBPS))


def test_equality_is_exact():
    threshold = ThresholdValue.percent(90)
    assert compare(Measurement.percent(90.0), Operator.EQ, threshold)
    assert not compare(Measurement.percent(90.0000001), Operator.EQ, threshold)
    assert compare(Measurement.percent(90.0000001), Operator.NEQ, threshold)


@pytest.mark.parametrize(
    "op,value,expected",
    [
        (Operator.GTE, 90, True),
        (Operator.GT, 90, False),
        (Operator.LTE, 90, True),
        (Operator.LT, 89.9, True),
    ],
)
def test_operators(op, value, expected):
    assert compare(Measurement.percent(value), op, ThresholdValue.percent(90)) is expected


def test_result_code_any_matches_everything():
    criterion = ResultCodeCriterion()
    assert match_result_code(0, criterion)
    assert match_result_code(-1, criterion)


def test_result_code_comparison():
    criterion = ResultCodeCriterion(operator=ResultCodeOperator.NEQ, result_code=0)
    assert match_result_code(3, criterion)
    assert not match_result_code(0, criterion)


def test_result_code_operator_needs_code():
    with pytest.raises(ValueError):
        ResultCodeCriterion(operator=ResultCodeOperator.GT)


def test_tracker_requires_full_window_of_true_outcomes():
    tracker = DurationTracker(window_seconds=300, tick_seconds=60)
    assert tracker.required == 5
    for _ in range(4):
        assert tracker.add(True) is False
    assert tracker.add(True) is True
    assert tracker.add(False) is False
    assert tracker.progress == 0


def test_tracker_ignores_true_outcomes_inside_one_tick():
    tracker = DurationTracker(window_seconds=300, tick_seconds=60)
    for i in range(10):
        tracker.add(True, T0 + timedelta(seconds=i))
    assert tracker.progress == 1
    assert tracker.satisfied is False

    for i in range(1, 5):
        assert tracker.add(True, T0 + timedelta(minutes=i)) is (i == 4)


def test_tracker_false_outcome_always_counts():
    tracker = DurationTracker(window_seconds=120, tick_seconds=60)
    tracker.add(True, T0)
    tracker.add(False, T0 + timedelta(seconds=1))
    # The run restarted, so the next true outcome is accepted immediately.
    tracker.add(True, T0 + timedelta(seconds=2))
    assert list(tracker.buffer) == [False, True]



def test_tracker_rounds_partial_ticks_up():
    assert DurationTracker(window_seconds=90, tick_seconds=60).required == 2
    assert DurationTracker(window_seconds=10, tick_seconds=60).required == 1


def test_make_tracker_without_window():
    assert make_tracker(None, 60) is None
