"""
Shared primitives of the condition schema: operators, duration windows and
threshold values.

Enum values are the labels used in condition documents, so a document value
maps onto a member by (case-insensitive) label.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

class Operator(str, Enum):
    GTE = "greater than or equal to"
    LTE = "less than or equal to"
    LT = "less than"
    GT = "greater than"
    EQ = "equal to"
    NEQ = "not equal to"


class ResultCodeOperator(str, Enum):
    """Script result code comparison; ANY ignores the result code."""

    NEQ = "not equal to"
    GTE = "greater than or equal to"
    LTE = "less than or equal to"
    GT = "greater than"
    LT = "less than"
    EQ = "equal to"
    ANY = "any"

    def as_operator(self) -> Optional[Operator]:
        if self is ResultCodeOperator.ANY:
            return None
        return Operator(self.value)


# ---------------------------------------------------------------------------
# Duration windows
# ---------------------------------------------------------------------------

class TimeUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def seconds(self) -> int:
        return _UNIT_SECONDS[self]


_UNIT_SECONDS = {
    TimeUnit.SECONDS: 1,
    TimeUnit.MINUTES: 60,
    TimeUnit.HOURS: 3600,
    TimeUnit.DAYS: 86400,
}


def parse_time_unit(label: str) -> TimeUnit:
    """Map 'Minutes', 'minute', 'Minute(s)', 'hour' ... onto a TimeUnit."""
    text = label.strip().lower().replace("(s)", "")
    if not text.endswith("s"):
        text += "s"
    return TimeUnit(text)


class DurationWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float = Field(..., gt=0, allow_inf_nan=False)
    unit: TimeUnit = TimeUnit.MINUTES

    @property
    def total_seconds(self) -> float:
        return self.value * self.unit.seconds


def _fixed_window(label: str) -> DurationWindow:
    amount, unit = label.split(" ", 1)
    return DurationWindow(value=float(amount), unit=parse_time_unit(unit))


class FixedWindow(str, Enum):
    """Windows restricted by the document to a fixed set of choices."""

    FIVE_MINUTES = "5 minutes"
    FIFTEEN_MINUTES = "15 minutes"
    THIRTY_MINUTES = "30 minutes"
    SIXTY_MINUTES = "60 minutes"

    @property
    def window(self) -> DurationWindow:
        return _fixed_window(self.value)


class ResetInterval(str, Enum):
    SECONDS_90 = "90 seconds"
    MINUTES_3 = "3 minutes"
    MINUTES_6 = "6 minutes"
    MINUTES_12 = "12 minutes"
    MINUTES_18 = "18 minutes"
    MINUTES_20 = "20 minutes"
    MINUTES_30 = "30 minutes"
    HOURS_1 = "1 hour"
    HOURS_2 = "2 hours"
    HOURS_4 = "4 hours"
    HOURS_8 = "8 hours"
    HOURS_12 = "12 hours"
    HOURS_24 = "24 hours"

    @property
    def window(self) -> DurationWindow:
        return _fixed_window(self.value)


class PatchAge(str, Enum):
    """Days since the last patch install, as offered by Patch Last Installed."""

    DAYS_1 = "1"
    DAYS_7 = "7"
    DAYS_15 = "15"
    DAYS_30 = "30"
    DAYS_60 = "60"
    DAYS_90 = "90"
    DAYS_120 = "120"

    @property
    def window(self) -> DurationWindow:
        return DurationWindow(value=float(self.value), unit=TimeUnit.DAYS)


# ---------------------------------------------------------------------------
# Threshold values
# ---------------------------------------------------------------------------

class Scale(str, Enum):
    PERCENT = "percent"
    BYTES = "bytes"
    BYTES_PER_SECOND = "bytes_per_second"


class ByteUnit(str, Enum):
    """Byte scale used by Memory style thresholds."""

    KILO = "Kilo"
    MEGA = "Mega"
    GIGA = "Giga"
    TERA = "Tera"

    @property
    def multiplier(self) -> int:
        return 1024 ** (list(ByteUnit).index(self) + 1)


class CapacityUnit(str, Enum):
    """Disk space threshold unit: percent or a byte scale."""

    PERCENT = "Percent (%)"
    KILOBYTE = "Kilobyte"
    MEGABYTE = "Megabyte"
    GIGABYTE = "Gigabyte"
    TERABYTE = "Terabyte"

    @property
    def multiplier(self) -> int:
        if self is CapacityUnit.PERCENT:
            return 1
        return 1024 ** list(CapacityUnit).index(self)


class RateUnit(str, Enum):
    KIBPS = "KiBps"
    MIBPS = "MiBps"
    GIBPS = "GiBps"
    TIBPS = "TiBps"

    @property
    def multiplier(self) -> int:
        return 1024 ** (list(RateUnit).index(self) + 1)


ThresholdUnit = Union[CapacityUnit, ByteUnit, RateUnit]


class ThresholdValue(BaseModel):
    """A bare percent (unit None) or a magnitude with a byte/rate unit."""

    model_config = ConfigDict(frozen=True)

    magnitude: float = Field(..., ge=0, allow_inf_nan=False)
    unit: Optional[ThresholdUnit] = None

    @property
    def scale(self) -> Scale:
        if self.unit is None or self.unit is CapacityUnit.PERCENT:
            return Scale.PERCENT
        if isinstance(self.unit, RateUnit):
            return Scale.BYTES_PER_SECOND
        return Scale.BYTES

    @property
    def base_value(self) -> float:
        if self.unit is None:
            return self.magnitude
        return self.magnitude * self.unit.multiplier

    @classmethod
    def percent(cls, value: float) -> "ThresholdValue":
        return cls(magnitude=value)
