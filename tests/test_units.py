import math

import pytest

from metricscope.units import (
    Unit,
    float_to_displayable,
    format_duration,
    int_to_displayable,
)


@pytest.mark.parametrize("unit", list(Unit))
def test_from_string_round_trip(unit):
    assert Unit.from_string(unit.value) is unit


def test_from_string_unknown_is_none():
    assert Unit.from_string("furlongs") is None


def test_data_units_are_not_time_based():
    for unit in (Unit.BYTES, Unit.KIBIBYTES, Unit.MEBIBYTES):
        assert unit.is_data_based() is True
        assert unit.is_time_based() is False


def test_time_units_are_not_data_based():
    for unit in (Unit.SECONDS, Unit.MILLISECONDS, Unit.MICROSECONDS, Unit.NANOSECONDS):
        assert unit.is_time_based() is True
        assert unit.is_data_based() is False


def test_plain_units_are_neither_time_nor_data():
    for unit in (Unit.COUNT, Unit.PERCENT):
        assert unit.is_time_based() is False
        assert unit.is_data_based() is False


@pytest.mark.parametrize("value", [0, 7, 123456789])
def test_int_without_unit(value):
    assert int_to_displayable(value, None) == str(value)


def test_float_without_unit_plain_decimal():
    assert float_to_displayable(1.5, None) == "1.5"
    assert float_to_displayable(2.0, None) == "2"
    assert float_to_displayable(1e20, None) == str(10**20)
    assert "e" not in float_to_displayable(1.5e-7, None)


def test_count_and_percent_labels():
    assert int_to_displayable(7, Unit.COUNT) == "7" + Unit.COUNT.as_canonical_label()
    assert float_to_displayable(2.25, Unit.PERCENT) == "2.25" + Unit.PERCENT.as_canonical_label()


@pytest.mark.parametrize("k", [1, 3, 512])
def test_data_scales_to_kib(k):
    text = int_to_displayable(k * 1024, Unit.BYTES)
    number, name = text.split(" ")
    assert name == "KiB"
    assert float(number) == k


def test_data_offset_matches_scaled_bytes():
    assert int_to_displayable(5, Unit.KIBIBYTES) == int_to_displayable(5 * 1024, Unit.BYTES)
    assert int_to_displayable(5, Unit.MEBIBYTES) == int_to_displayable(5 * 1024**2, Unit.BYTES)


def test_data_zero():
    assert int_to_displayable(0, Unit.BYTES) == "0.00 B"


def test_data_caps_at_largest_unit():
    text = int_to_displayable(1024**7, Unit.BYTES)
    assert text.endswith(" PiB")
    assert float(text.split(" ")[0]) == 1024.0**2


@pytest.mark.parametrize("k", [1, 42, 999])
def test_duration_whole_units(k):
    assert format_duration(k * 1_000_000_000) == f"{k}s"
    assert format_duration(k * 1_000_000) == f"{k}ms"
    assert format_duration(k * 1_000) == f"{k}µs"
    assert format_duration(k) == f"{k}ns"


def test_duration_fraction():
    assert format_duration(1_500_000_000) == "1.5s"


def test_duration_round_up_carries_into_integer():
    assert format_duration(1_999_600_000) == "2.s"


def test_duration_negative_rejected():
    with pytest.raises(ValueError):
        format_duration(-1)


def test_int_time_matches_duration():
    assert int_to_displayable(250, Unit.MILLISECONDS) == format_duration(250 * 1_000_000)
    assert int_to_displayable(3, Unit.SECONDS) == format_duration(3 * 1_000_000_000)


def test_float_time_sign_and_scale():
    assert float_to_displayable(-2.0, Unit.SECONDS) == "-" + format_duration(2_000_000_000)
    assert float_to_displayable(1500.0, Unit.MILLISECONDS) == format_duration(1_500_000_000)
    assert float_to_displayable(0.0, Unit.SECONDS) == format_duration(0)


def test_float_time_non_finite_falls_back_to_plain():
    nan = float("nan")
    assert float_to_displayable(nan, Unit.SECONDS) == float_to_displayable(nan, None)
    assert float_to_displayable(math.inf, Unit.SECONDS) == float_to_displayable(math.inf, None)