"""Measurement units and human-readable rendering of metric values."""

from __future__ import annotations

import enum
import math
import sys
from decimal import Decimal
from fractions import Fraction


class Unit(enum.Enum):
    """A unit of measurement attached to a metric."""

    COUNT = "count"
    PERCENT = "percent"
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"
    MICROSECONDS = "microseconds"
    NANOSECONDS = "nanoseconds"
    TEBIBYTES = "tebibytes"
    GIGIBYTES = "gigibytes"
    MEBIBYTES = "mebibytes"
    KIBIBYTES = "kibibytes"
    BYTES = "bytes"
    TERABITS_PER_SECOND = "terabits_per_second"
    GIGABITS_PER_SECOND = "gigabits_per_second"
    MEGABITS_PER_SECOND = "megabits_per_second"
    KILOBITS_PER_SECOND = "kilobits_per_second"
    BITS_PER_SECOND = "bits_per_second"
    COUNT_PER_SECOND = "count_per_second"

    @staticmethod
    def from_string(text: str) -> Unit | None:
        """Parse a unit from its string form, or return None if unknown."""
        try:
            return Unit(text)
        except ValueError:
            return None

    def as_canonical_label(self) -> str:
        """The short label shown after a value in this unit."""
        return _LABELS[self]

    def is_time_based(self) -> bool:
        """Whether this unit measures time."""
        return self in _NANOS_PER_UNIT

    def is_data_based(self) -> bool:
        """Whether this unit measures an amount of data."""
        return self in _DATA_UNITS


_LABELS = {
    Unit.COUNT: "",
    Unit.PERCENT: "%",
    Unit.SECONDS: "s",
    Unit.MILLISECONDS: "ms",
    Unit.MICROSECONDS: "µs",
    Unit.NANOSECONDS: "ns",
    Unit.TEBIBYTES: "TiB",
    Unit.GIGIBYTES: "GiB",
    Unit.MEBIBYTES: "MiB",
    Unit.KIBIBYTES: "KiB",
    Unit.BYTES: "B",
    Unit.TERABITS_PER_SECOND: "Tbps",
    Unit.GIGABITS_PER_SECOND: "Gbps",
    Unit.MEGABITS_PER_SECOND: "Mbps",
    Unit.KILOBITS_PER_SECOND: "kbps",
    Unit.BITS_PER_SECOND: "bps",
    Unit.COUNT_PER_SECOND: "/s",
}

_NANOS_PER_UNIT = {
    Unit.SECONDS: 1_000_000_000,
    Unit.MILLISECONDS: 1_000_000,
    Unit.MICROSECONDS: 1_000,
    Unit.NANOSECONDS: 1,
}

_SECONDS_SCALE = {
    Unit.SECONDS: None,
    Unit.MILLISECONDS: 1_000.0,
    Unit.MICROSECONDS: 1_000_000.0,
    Unit.NANOSECONDS: 1_000_000_000.0,
}

_DATA_UNITS = frozenset(
    {
        Unit.TEBIBYTES,
        Unit.GIGIBYTES,
        Unit.MEBIBYTES,
        Unit.KIBIBYTES,
        Unit.BYTES,
        Unit.TERABITS_PER_SECOND,
        Unit.GIGABITS_PER_SECOND,
        Unit.MEGABITS_PER_SECOND,
        Unit.KILOBITS_PER_SECOND,
        Unit.BITS_PER_SECOND,
    }
)

_DATA_OFFSET = {
    Unit.KIBIBYTES: 1,
    Unit.MEBIBYTES: 2,
    Unit.GIGIBYTES: 3,
    Unit.TEBIBYTES: 4,
}

_DATA_NAMES = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")
_DATA_DELIMITER = 1024.0
_LN_DELIMITER = math.log(_DATA_DELIMITER)
_MAX_DURATION_NANOS = (2**64) * 1_000_000_000


def _float_text(value: float) -> str:
    """Shortest plain decimal text for a float, never in exponent form."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        if value == 0 and math.copysign(1.0, value) < 0:
            return "-0"
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def _fixed(value: float, digits: int) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return f"{value:.{digits}f}"


def _is_normal(value: float) -> bool:
    return math.isfinite(value) and abs(value) >= sys.float_info.min


def _data_text(value: float, unit: Unit) -> str:
    offset = _DATA_OFFSET.get(unit, 0)
    max_index = len(_DATA_NAMES) - 1
    if value > 0 and math.isinf(value):
        exponent = max_index
    elif value > 0:
        exponent = max(0, math.floor(math.log(value) / _LN_DELIMITER))
    else:
        exponent = 0
    unit_index = exponent + offset
    if unit_index > max_index:
        exponent -= unit_index - max_index
        unit_index = max_index
    scaled = value / _DATA_DELIMITER**exponent
    return f"{_fixed(scaled, 2)} {_DATA_NAMES[unit_index]}"


def int_to_displayable(value: int, unit: Unit | None) -> str:
    """Render an integer value (such as a counter total) in the given unit."""
    if unit is None:
        return str(value)
    if unit.is_data_based():
        return _data_text(float(value), unit)
    if unit.is_time_based():
        return format_duration(value * _NANOS_PER_UNIT[unit])
    return f"{value}{unit.as_canonical_label()}"


def float_to_displayable(value: float, unit: Unit | None) -> str:
    """Render a floating-point value (gauge or histogram) in the given unit."""
    if unit is None:
        return _float_text(value)
    if unit.is_data_based():
        return _data_text(value, unit)
    if unit.is_time_based():
        scale = _SECONDS_SCALE[unit]
        adjusted = value if scale is None else value / scale
        sign = "-" if adjusted < 0.0 else ""
        normalized = abs(adjusted)
        if normalized != 0.0 and not _is_normal(normalized):
            return _float_text(value)
        return sign + format_duration(_seconds_to_nanos(normalized))
    return f"{_fixed(value, 2)}{unit.as_canonical_label()}"


def _seconds_to_nanos(seconds: float) -> int:
    nanos = round(Fraction(seconds) * 1_000_000_000)
    if nanos >= _MAX_DURATION_NANOS:
        raise OverflowError("value is too large to be shown as a duration")
    return nanos


def _decimal(integer: int, fractional: int, divisor: int, precision: int) -> str:
    """Render ``integer + fractional / (divisor * 10)`` to at most ``precision`` digits."""
    step = divisor * 10 // 10**precision
    digits, rest = divmod(fractional, step)
    if rest and rest * 2 >= step:
        digits += 1
        if digits == 10**precision:
            integer += 1
            digits = 0
    if fractional == 0 or precision == 0:
        return str(integer)
    return f"{integer}.{digits:0{precision}d}".rstrip("0")


def format_duration(nanos: int) -> str:
    """Render a non-negative duration in nanoseconds with a truncated precision."""
    if nanos < 0:
        raise ValueError("duration must not be negative")
    secs, sub_nanos = divmod(nanos, 1_000_000_000)
    if secs > 0:
        return _decimal(secs, sub_nanos, 100_000_000, 3) + "s"
    if nanos >= 1_000_000:
        whole, rest = divmod(nanos, 1_000_000)
        return _decimal(whole, rest, 100_000, 2) + "ms"
    if nanos >= 1_000:
        whole, rest = divmod(nanos, 1_000)
        return _decimal(whole, rest, 100, 1) + "µs"
    return _decimal(nanos, 0, 1, 0) + "ns"