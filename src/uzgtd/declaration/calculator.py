"""Duty and tax calculator.

Per item:

  duty    = customs_value * duty_rate     (EAEU origin: 0, CIS origin: x0.75)
  excise  = customs_value * excise_rate
  vat     = (customs_value + duty + excise) * vat_rate
  fee     = clamp(customs_value * 0.2%, 50 000, 1 000 000)
  total   = duty + excise + vat + fee

Every amount is rounded to 2 decimals the moment it is produced, so the sum
of rounded item amounts may differ from a single rounding of the exact total.
That drift is what the customs authority expects on the printed form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, DecimalException
from typing import Sequence

from uzgtd.declaration.config import EngineConfig, get_engine_config
from uzgtd.declaration.errors import CalculationOverflow, MissingCalculationInput
from uzgtd.declaration.models import DeclarationItem
from uzgtd.declaration.money import ZERO, clamp, percent_of, round2
from uzgtd.declaration.preferences import PreferenceGroup
from uzgtd.declaration.reference import RateQuote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemPayment:
    """Payment breakdown for one item, in the base accounting currency."""

    item_number: int | None
    hs_code: str | None
    origin_country: str | None
    preference_group: PreferenceGroup
    customs_value: Decimal
    base_duty_rate: Decimal
    duty_rate: Decimal
    vat_rate: Decimal
    excise_rate: Decimal
    duty_amount: Decimal
    excise_amount: Decimal
    vat_base: Decimal
    vat_amount: Decimal
    customs_fee: Decimal
    total_payment: Decimal
    rate_source: str = "reference"
    rate_warning: str | None = None

    @property
    def has_preference(self) -> bool:
        return self.preference_group is not PreferenceGroup.MFN


@dataclass(frozen=True)
class DeclarationPayment:
    """Sum of item payments; each figure rounded to 2 decimals."""

    total_customs_value: Decimal
    total_duty: Decimal
    total_vat: Decimal
    total_excise: Decimal
    total_fee: Decimal
    grand_total: Decimal
    item_count: int


def _require_finite(value: Decimal, label: str, path: str | None) -> Decimal:
    if not value.is_finite():
        raise CalculationOverflow(f"{label} is not a finite number: {value}", path=path)
    return value


class DutyCalculator:
    """Stateless calculator bound to an :class:`EngineConfig`."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or get_engine_config()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def effective_duty_rate(self, base_rate: Decimal, group: PreferenceGroup) -> Decimal:
        if group is PreferenceGroup.EAEU:
            return ZERO
        if group is PreferenceGroup.CIS:
            return base_rate * self._config.cis_duty_factor
        return base_rate

    def customs_fee(self, customs_value: Decimal) -> Decimal:
        fee = self._config.fee
        return clamp(round2(customs_value * fee.rate), fee.minimum, fee.maximum)

    def calculate_item(
        self,
        item: DeclarationItem,
        origin_country: str | None,
        rate_quote: RateQuote,
        *,
        customs_value: Decimal | None = None,
        preference_group: PreferenceGroup | None = None,
        path: str | None = None,
    ) -> ItemPayment:
        """Compute the payment breakdown for *item*.

        *customs_value* overrides the item's own value; the engine passes the
        value already converted into the base currency. *preference_group*
        overrides the lookup in the configured preference tables.
        """

        value = item.customs_value if customs_value is None else customs_value
        if value is None:
            raise MissingCalculationInput("Customs value is required to compute payments", path=path)

        try:
            value = _require_finite(value, "Customs value", path)
            for label, rate in (
                ("Duty rate", rate_quote.duty_rate),
                ("VAT rate", rate_quote.vat_rate),
                ("Excise rate", rate_quote.excise_rate),
            ):
                _require_finite(rate, label, path)

            group = preference_group or self._config.preferences.group_for(origin_country)
            duty_rate = self.effective_duty_rate(rate_quote.duty_rate, group)

            duty_amount = percent_of(value, duty_rate)
            excise_amount = percent_of(value, rate_quote.excise_rate)
            vat_base = round2(value + duty_amount + excise_amount)
            vat_amount = percent_of(vat_base, rate_quote.vat_rate)
            fee = self.customs_fee(value)
            total = round2(duty_amount + excise_amount + vat_amount + fee)
        except DecimalException as exc:
            raise CalculationOverflow(f"Arithmetic overflow while computing payments: {exc}", path=path) from exc

        _require_finite(total, "Total payment", path)
        return ItemPayment(
            item_number=item.item_number,
            hs_code=item.hs_code,
            origin_country=origin_country,
            preference_group=group,
            customs_value=value,
            base_duty_rate=rate_quote.duty_rate,
            duty_rate=duty_rate,
            vat_rate=rate_quote.vat_rate,
            excise_rate=rate_quote.excise_rate,
            duty_amount=duty_amount,
            excise_amount=excise_amount,
            vat_base=vat_base,
            vat_amount=vat_amount,
            customs_fee=fee,
            total_payment=total,
            rate_source=rate_quote.source,
            rate_warning=rate_quote.warning,
        )

    def calculate_totals(self, payments: Sequence[ItemPayment]) -> DeclarationPayment:
        """Aggregate item payments; totals are sums of already-rounded amounts."""

        return DeclarationPayment(
            total_customs_value=round2(sum((p.customs_value for p in payments), ZERO)),
            total_duty=round2(sum((p.duty_amount for p in payments), ZERO)),
            total_vat=round2(sum((p.vat_amount for p in payments), ZERO)),
            total_excise=round2(sum((p.excise_amount for p in payments), ZERO)),
            total_fee=round2(sum((p.customs_fee for p in payments), ZERO)),
            grand_total=round2(sum((p.total_payment for p in payments), ZERO)),
            item_count=len(payments),
        )
