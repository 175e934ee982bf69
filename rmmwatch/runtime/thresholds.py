from __future__ import annotations

import operator as _op
from dataclasses import dataclass
from typing import Callable, Dict

from rmmwatch.errors import ConfigurationError
from rmmwatch.schemas.common import Operator, Scale, ThresholdValue
from rmmwatch.schemas.conditions import ResultCodeCriterion


@dataclass(frozen=True)
class Measurement:
    """A live sample already expressed in its base unit."""

    value: float
    scale: Scale = Scale.PERCENT

    @classmethod
    def percent(cls, value: float) -> "Measurement":
        return cls(float(value), Scale.PERCENT)

    @classmethod
    def bytes(cls, value: float) -> "Measurement":
        return cls(float(value), Scale.BYTES)

    @classmethod
    def rate(cls, bytes_per_second: float) -> "Measurement":
        return cls(float(bytes_per_second), Scale.BYTES_PER_SECOND)


# Exact comparisons: EQ / NEQ carry no epsilon.
_OPERATORS: Dict[Operator, Callable[[float, float], bool]] = {
    Operator.GTE: _op.ge,
    Operator.LTE: _op.le,
    Operator.LT: _op.lt,
    Operator.GT: _op.gt,
    Operator.EQ: _op.eq,
    Operator.NEQ: _op.ne,
}


def compare_values(left: float, op: Operator, right: float) -> bool:
    return _OPERATORS[op](left, right)


def compare(sample: Measurement, op: Operator, threshold: ThresholdValue) -> bool:
    """
    Compare a sample against a threshold after unit normalization.

    Both sides must share a scale; a percent sample against a byte threshold
    is a configuration error, never a coercion.
    """
    if sample.scale is not threshold.scale:
        raise ConfigurationError(
            f"cannot compare a {sample.scale.value} sample with a "
            f"{threshold.scale.value} threshold"
        )
    return compare_values(sample.value, op, threshold.base_value)


def match_result_code(code: int, criterion: ResultCodeCriterion) -> bool:
    op = criterion.operator.as_operator()
    if op is None:
        return True
    return compare_values(code, op, criterion.result_code)
