"""Declaration engine: validate, correct and calculate in one pass.

The engine holds no per-declaration state. Reference data is read through the
injected gateway only; everything else is pure computation, so one engine can
serve unrelated declarations concurrently.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, DecimalException
from typing import Sequence

from uzgtd.declaration.adapters import form_to_canonical
from uzgtd.declaration.calculator import DeclarationPayment, DutyCalculator, ItemPayment
from uzgtd.declaration.config import EngineConfig, get_engine_config
from uzgtd.declaration.corrector import correct
from uzgtd.declaration.errors import (
    CalculationError,
    CalculationOverflow,
    FindingKind,
    MissingCalculationInput,
)
from uzgtd.declaration.models import (
    CorrectionEntry,
    DeclarationItem,
    DeclarationRecord,
    DeclarationTotals,
    Severity,
    ValidationFinding,
    item_path,
)
from uzgtd.declaration.money import round2, round3, sum_present
from uzgtd.declaration.reference import (
    ExchangeQuote,
    RateQuote,
    ReferenceDataGateway,
    get_reference_store,
)
from uzgtd.declaration.report import build_report
from uzgtd.declaration.schemas import DeclarationForm, ValidationReport
from uzgtd.declaration.validator import sort_findings, validate
from uzgtd.observability import declaration_scope, log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalculationOutcome:
    record: DeclarationRecord
    payments: tuple[ItemPayment, ...]
    totals: DeclarationPayment
    exchange_quote: ExchangeQuote
    findings: tuple[ValidationFinding, ...]


@dataclass(frozen=True)
class DeclarationResult:
    """Everything produced for one declaration."""

    record: DeclarationRecord
    findings: tuple[ValidationFinding, ...]
    corrections: tuple[CorrectionEntry, ...]
    payments: tuple[ItemPayment, ...]
    totals: DeclarationPayment
    exchange_quote: ExchangeQuote

    @property
    def errors(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity is Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def report(self) -> ValidationReport:
        return build_report(self.findings, self.corrections)


@dataclass(frozen=True)
class DutyQuote:
    payment: ItemPayment
    exchange_quote: ExchangeQuote
    rate_quote: RateQuote


@dataclass(frozen=True)
class _ItemOutcome:
    item: DeclarationItem
    payment: ItemPayment | None
    findings: tuple[ValidationFinding, ...]


def _finding(path: str, message: str, severity: Severity, kind: FindingKind) -> ValidationFinding:
    return ValidationFinding(path=path, message=message, severity=severity, kind=kind)


def apply_payment(item: DeclarationItem, payment: ItemPayment) -> DeclarationItem:
    """Copy the computed amounts onto the item."""

    return replace(
        item,
        duty_base=payment.customs_value,
        duty_rate=payment.duty_rate,
        duty_amount=payment.duty_amount,
        vat_base=payment.vat_base,
        vat_rate=payment.vat_rate,
        vat_amount=payment.vat_amount,
        excise_rate=payment.excise_rate,
        excise_amount=payment.excise_amount,
        fee_amount=payment.customs_fee,
        total_payment=payment.total_payment,
    )


_PAYMENT_FIELDS = (
    "duty_base",
    "duty_rate",
    "duty_amount",
    "vat_base",
    "vat_rate",
    "vat_amount",
    "excise_rate",
    "excise_amount",
    "fee_amount",
    "total_payment",
)


def clear_payment(item: DeclarationItem) -> DeclarationItem:
    """Drop payment amounts carried over from an earlier calculation."""

    return replace(item, **dict.fromkeys(_PAYMENT_FIELDS))


def _rounded_sum(values, rounder) -> Decimal | None:
    total = sum_present(values)
    return None if total is None else rounder(total)


class DeclarationEngine:
    """Validate, correct and compute payments for GTD declarations."""

    def __init__(
        self,
        gateway: ReferenceDataGateway | None = None,
        config: EngineConfig | None = None,
        max_workers: int = 1,
    ) -> None:
        self._config = config or get_engine_config()
        self._gateway = gateway if gateway is not None else get_reference_store()
        self._calculator = DutyCalculator(self._config)
        self._max_workers = max(1, int(max_workers))

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def gateway(self) -> ReferenceDataGateway:
        return self._gateway

    # -- individual stages -------------------------------------------------

    def validate(self, record: DeclarationRecord) -> list[ValidationFinding]:
        return validate(record)

    def correct(self, record: DeclarationRecord) -> tuple[DeclarationRecord, list[CorrectionEntry]]:
        return correct(record, self._config)

    def exchange_quote(self, record: DeclarationRecord) -> tuple[ExchangeQuote, list[ValidationFinding]]:
        currency = (record.financial.currency_code or self._config.base_currency).strip().upper()
        quote = self._gateway.get_exchange_rate(currency, record.declaration_date)
        findings: list[ValidationFinding] = []
        if quote.is_fallback:
            log_event(
                "exchange_rate.fallback",
                level=logging.WARNING,
                currency=currency,
                rate=str(quote.rate),
            )
            findings.append(
                _finding(
                    "financial.exchange_rate",
                    f"No published exchange rate for {currency}; fallback rate {quote.rate} used",
                    Severity.WARNING,
                    FindingKind.REFERENCE_DATA,
                )
            )
        return quote, findings

    def _calculate_one(
        self, index: int, item: DeclarationItem, record: DeclarationRecord, quote: ExchangeQuote
    ) -> _ItemOutcome:
        findings: list[ValidationFinding] = []
        rate_quote = self._gateway.get_rate(item.hs_code or "")
        if not rate_quote.found:
            findings.append(
                _finding(
                    item_path(index, "hs_code"),
                    f"No reference rates for HS code {item.hs_code or '(missing)'}; default rates applied",
                    Severity.WARNING,
                    FindingKind.REFERENCE_DATA,
                )
            )

        origin = item.origin_country_code or record.logistics.origin_country_code
        path = item_path(index, "customs_value")
        try:
            if item.customs_value is None:
                raise MissingCalculationInput("Customs value is required to compute payments", path=path)
            if not item.customs_value.is_finite():
                raise CalculationOverflow(f"Customs value is not a finite number: {item.customs_value}", path=path)
            try:
                base_value = round2(item.customs_value * quote.rate)
            except DecimalException as exc:
                raise CalculationOverflow(f"Customs value cannot be converted: {exc}", path=path) from exc
            payment = self._calculator.calculate_item(
                item,
                origin,
                rate_quote,
                customs_value=base_value,
                preference_group=self._gateway.get_preference_group(origin),
                path=path,
            )
        except CalculationError as exc:
            logger.warning("Payment calculation failed for %s: %s", exc.path or path, exc)
            kind = (
                FindingKind.MISSING_VALUE
                if isinstance(exc, MissingCalculationInput)
                else FindingKind.CALCULATION_OVERFLOW
            )
            findings.append(_finding(exc.path or path, str(exc), Severity.ERROR, kind))
            return _ItemOutcome(clear_payment(item), None, tuple(findings))
        return _ItemOutcome(apply_payment(item, payment), payment, tuple(findings))

    def calculate(self, record: DeclarationRecord) -> CalculationOutcome:
        """Compute item payments and aggregates for an already corrected record."""

        quote, findings = self.exchange_quote(record)
        indexed = list(enumerate(record.items))

        def run(entry: tuple[int, DeclarationItem]) -> _ItemOutcome:
            return self._calculate_one(entry[0], entry[1], record, quote)

        if self._max_workers > 1 and len(indexed) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                outcomes = list(pool.map(run, indexed))
        else:
            outcomes = [run(entry) for entry in indexed]

        items = tuple(outcome.item for outcome in outcomes)
        payments = tuple(outcome.payment for outcome in outcomes if outcome.payment is not None)
        for outcome in outcomes:
            findings.extend(outcome.findings)

        totals = self._calculator.calculate_totals(payments)
        calculated = replace(
            record,
            items=items,
            totals=self.aggregate_totals(items, totals),
        )
        return CalculationOutcome(calculated, payments, totals, quote, tuple(findings))

    @staticmethod
    def aggregate_totals(items: Sequence[DeclarationItem], payments: DeclarationPayment) -> DeclarationTotals:
        """Declaration totals as the sums of the item fields they summarize."""

        return DeclarationTotals(
            total_gross_weight=_rounded_sum((i.gross_weight for i in items), round3),
            total_net_weight=_rounded_sum((i.net_weight for i in items), round3),
            total_packages=sum_present(i.package_quantity for i in items),
            total_customs_value=_rounded_sum((i.customs_value for i in items), round2),
            total_duty=payments.total_duty,
            total_vat=payments.total_vat,
            total_excise=payments.total_excise,
            total_fee=payments.total_fee,
            total_payment=payments.grand_total,
        )

    # -- full pipeline -----------------------------------------------------

    def process(self, record: DeclarationRecord) -> DeclarationResult:
        """Validate the input, correct it and compute payments on the corrected copy."""

        with declaration_scope(record.declaration_id):
            findings = self.validate(record)
            corrected, corrections = self.correct(record)
            outcome = self.calculate(corrected)
            result = DeclarationResult(
                record=outcome.record,
                findings=tuple(sort_findings([*findings, *outcome.findings])),
                corrections=tuple(corrections),
                payments=outcome.payments,
                totals=outcome.totals,
                exchange_quote=outcome.exchange_quote,
            )
            log_event(
                "declaration.processed",
                items=len(record.items),
                errors=len(result.errors),
                warnings=len(result.warnings),
                corrections=len(corrections),
            )
        return result

    def process_form(self, form: DeclarationForm) -> DeclarationResult:
        return self.process(form_to_canonical(form))

    def validation_report(self, record: DeclarationRecord) -> ValidationReport:
        """Findings and corrections only, without computing payments."""

        _, corrections = self.correct(record)
        return build_report(self.validate(record), corrections)

    def quote_item(
        self,
        hs_code: str,
        customs_value: Decimal,
        origin_country: str | None = None,
        currency: str | None = None,
        on_date: date | str | None = None,
    ) -> DutyQuote:
        """Payments for a single line, converting *customs_value* into the base currency."""

        code = (currency or self._config.base_currency).strip().upper()
        exchange = self._gateway.get_exchange_rate(code, on_date)
        if exchange.is_fallback:
            logger.warning("Using fallback exchange rate %s for %s", exchange.rate, code)
        rate_quote = self._gateway.get_rate(hs_code)
        if not customs_value.is_finite():
            raise CalculationOverflow(f"Customs value is not a finite number: {customs_value}")
        item = DeclarationItem(item_number=1, hs_code=hs_code, origin_country_code=origin_country)
        payment = self._calculator.calculate_item(
            item,
            origin_country,
            rate_quote,
            customs_value=round2(customs_value * exchange.rate),
            preference_group=self._gateway.get_preference_group(origin_country),
        )
        return DutyQuote(payment=payment, exchange_quote=exchange, rate_quote=rate_quote)
