"""Decimal helpers shared by the corrector, the calculator and the adapters.

All monetary amounts are rounded to 2 decimals and all weights to 3 decimals,
half-up, at the point where they are produced.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

MONEY_PRECISION = Decimal("0.01")
WEIGHT_PRECISION = Decimal("0.001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

_NAN = Decimal("NaN")


def to_decimal(value: object) -> Decimal | None:
    """Coerce *value* into a :class:`Decimal`.

    ``None`` and blank strings stay ``None``. Values that cannot be parsed
    become ``Decimal('NaN')`` so that the validator can report them instead of
    the value silently disappearing.
    """

    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return _NAN
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _NAN


def is_finite(value: Decimal | None) -> bool:
    return value is not None and value.is_finite()


def round2(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def round3(value: Decimal) -> Decimal:
    return value.quantize(WEIGHT_PRECISION, rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, rate: Decimal) -> Decimal:
    """Return ``round2(base * rate / 100)``."""

    return round2(base * rate / HUNDRED)


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(upper, value))


def sum_present(values: Iterable[Decimal | None]) -> Decimal | None:
    """Sum the finite values, or ``None`` when none are present."""

    total: Decimal | None = None
    for value in values:
        if not is_finite(value):
            continue
        total = value if total is None else total + value
    return total


def statistical_value(
    customs_value: Decimal | None,
    transport_cost: Decimal | None = None,
    insurance_cost: Decimal | None = None,
) -> Decimal | None:
    """Statistical value is the customs value plus transport and insurance."""

    if customs_value is None:
        return None
    total = customs_value
    for extra in (transport_cost, insurance_cost):
        if extra is not None:
            total += extra
    return round2(total)
