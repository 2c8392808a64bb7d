"""Conversion of engine results into the serializable report models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable

from uzgtd.declaration.adapters import canonical_to_form
from uzgtd.declaration.calculator import DeclarationPayment, ItemPayment
from uzgtd.declaration.models import CorrectionEntry, Severity, ValidationFinding
from uzgtd.declaration.reference import ExchangeQuote, RateQuote
from uzgtd.declaration.schemas import (
    CorrectionModel,
    DeclarationPaymentModel,
    DutyQuoteModel,
    ExchangeQuoteModel,
    FindingModel,
    ItemPaymentModel,
    ProcessResultModel,
    RateQuoteModel,
    ValidationReport,
)

if TYPE_CHECKING:
    from uzgtd.declaration.engine import DeclarationResult, DutyQuote


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def finding_model(finding: ValidationFinding) -> FindingModel:
    return FindingModel(
        path=finding.path,
        message=finding.message,
        severity=finding.severity.value,
        kind=finding.kind.value,
    )


def correction_model(entry: CorrectionEntry) -> CorrectionModel:
    return CorrectionModel(
        path=entry.path,
        original_value=_text(entry.original_value),
        corrected_value=_text(entry.corrected_value),
        reason=entry.reason,
    )


def build_report(
    findings: Iterable[ValidationFinding], corrections: Iterable[CorrectionEntry] = ()
) -> ValidationReport:
    """A declaration is valid when no finding has error severity."""

    findings = list(findings)
    errors = [finding_model(f) for f in findings if f.severity is Severity.ERROR]
    warnings = [finding_model(f) for f in findings if f.severity is Severity.WARNING]
    return ValidationReport(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        corrections=[correction_model(entry) for entry in corrections],
    )


def payment_model(payment: ItemPayment) -> ItemPaymentModel:
    return ItemPaymentModel(
        item_number=payment.item_number,
        hs_code=payment.hs_code,
        origin_country=payment.origin_country,
        preference_group=payment.preference_group.value,
        customs_value=_text(payment.customs_value),
        base_duty_rate=_text(payment.base_duty_rate),
        duty_rate=_text(payment.duty_rate),
        vat_rate=_text(payment.vat_rate),
        excise_rate=_text(payment.excise_rate),
        duty_amount=_text(payment.duty_amount),
        excise_amount=_text(payment.excise_amount),
        vat_base=_text(payment.vat_base),
        vat_amount=_text(payment.vat_amount),
        customs_fee=_text(payment.customs_fee),
        total_payment=_text(payment.total_payment),
        rate_source=payment.rate_source,
    )


def totals_model(totals: DeclarationPayment) -> DeclarationPaymentModel:
    return DeclarationPaymentModel(
        total_customs_value=_text(totals.total_customs_value),
        total_duty=_text(totals.total_duty),
        total_vat=_text(totals.total_vat),
        total_excise=_text(totals.total_excise),
        total_fee=_text(totals.total_fee),
        grand_total=_text(totals.grand_total),
        item_count=totals.item_count,
    )


def exchange_model(quote: ExchangeQuote) -> ExchangeQuoteModel:
    return ExchangeQuoteModel(
        currency_code=quote.currency_code,
        rate=_text(quote.rate),
        rate_date=quote.rate_date.isoformat() if quote.rate_date else None,
        source=quote.source,
    )


def process_result_model(result: DeclarationResult) -> ProcessResultModel:
    """Serializable view of a full engine run, with the calculated form."""

    return ProcessResultModel(
        report=result.report(),
        form=canonical_to_form(result.record),
        item_payments=[payment_model(p) for p in result.payments],
        totals=totals_model(result.totals),
        exchange_rate=exchange_model(result.exchange_quote),
    )


def duty_quote_model(quote: DutyQuote) -> DutyQuoteModel:
    return DutyQuoteModel(
        payment=payment_model(quote.payment),
        exchange_rate=exchange_model(quote.exchange_quote),
        hs_description=quote.rate_quote.description,
        rate_found=quote.rate_quote.found,
    )


def rate_quote_model(quote: RateQuote) -> RateQuoteModel:
    return RateQuoteModel(
        hs_code=quote.hs_code,
        description=quote.description,
        duty_rate=_text(quote.duty_rate),
        vat_rate=_text(quote.vat_rate),
        excise_rate=_text(quote.excise_rate),
        source=quote.source,
        found=quote.found,
        warning=quote.warning,
    )
