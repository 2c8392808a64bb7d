from decimal import Decimal

from uzgtd.declaration.money import (
    clamp,
    percent_of,
    round2,
    round3,
    statistical_value,
    sum_present,
    to_decimal,
)


def test_rounding_is_half_up():
    assert round2(Decimal("0.125")) == Decimal("0.13")
    assert round2(Decimal("2.675")) == Decimal("2.68")
    assert round3(Decimal("1.0005")) == Decimal("1.001")
    assert str(round2(Decimal("5"))) == "5.00"


def test_to_decimal_keeps_blank_as_none_and_marks_garbage():
    assert to_decimal(None) is None
    assert to_decimal("   ") is None
    assert to_decimal(" 12.50 ") == Decimal("12.50")
    assert to_decimal(3) == Decimal("3")
    assert to_decimal("12,5").is_nan()
    assert to_decimal(True).is_nan()


def test_percent_of_rounds_once():
    assert percent_of(Decimal("19245.00"), Decimal("25")) == Decimal("4811.25")
    assert percent_of(Decimal("100.01"), Decimal("12")) == Decimal("12.00")


def test_clamp_bounds():
    lower, upper = Decimal("50000"), Decimal("1000000")
    assert clamp(Decimal("38.49"), lower, upper) == lower
    assert clamp(Decimal("2000000"), lower, upper) == upper
    assert clamp(Decimal("60000"), lower, upper) == Decimal("60000")


def test_sum_present_skips_missing_and_non_finite():
    assert sum_present([]) is None
    assert sum_present([None, Decimal("NaN")]) is None
    assert sum_present([Decimal("1.5"), None, Decimal("2")]) == Decimal("3.5")


def test_statistical_value_adds_transport_and_insurance():
    assert statistical_value(None) is None
    assert statistical_value(Decimal("1000"), Decimal("150.555"), None) == Decimal("1150.56")
    assert statistical_value(Decimal("1000"), Decimal("100"), Decimal("20")) == Decimal("1120.00")
