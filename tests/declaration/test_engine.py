import logging
from dataclasses import replace
from decimal import Decimal

import pytest
from declaration_factories import car_item, import_record

from uzgtd.declaration.adapters import canonical_to_form
from uzgtd.declaration.engine import DeclarationEngine
from uzgtd.declaration.errors import CalculationOverflow, FindingKind
from uzgtd.declaration.models import Party, Severity
from uzgtd.declaration.preferences import PreferenceGroup


def _usd_record(*items):
    record = import_record(*(items or (car_item(invoice_value=Decimal("1500.00"), customs_value=Decimal("1500.00")),)))
    return replace(record, financial=replace(record.financial, currency_code="USD"))


def test_clean_declaration(engine):
    result = engine.process(import_record())

    assert result.is_valid
    assert result.findings == ()
    assert result.corrections == ()
    assert result.exchange_quote.source == "base"
    item = result.record.items[0]
    assert item.duty_base == Decimal("19245.00")
    assert item.duty_amount == Decimal("4811.25")
    assert item.vat_amount == Decimal("2886.75")
    assert item.fee_amount == Decimal("50000.00")
    assert item.total_payment == Decimal("57698.00")
    assert result.totals.grand_total == Decimal("57698.00")
    assert result.record.totals.total_payment == Decimal("57698.00")
    assert result.record.totals.total_gross_weight == Decimal("1250.000")


def test_foreign_currency_is_converted(engine):
    result = engine.process(_usd_record())
    payment = result.payments[0]

    assert result.exchange_quote.rate == Decimal("12850")
    assert payment.customs_value == Decimal("19275000.00")
    assert payment.duty_amount == Decimal("4818750.00")
    assert payment.vat_base == Decimal("24093750.00")
    assert payment.vat_amount == Decimal("2891250.00")
    assert payment.customs_fee == Decimal("50000")
    assert payment.total_payment == Decimal("7760000.00")
    assert result.record.totals.total_customs_value == Decimal("1500.00")
    assert result.totals.total_customs_value == Decimal("19275000.00")


def test_fallback_exchange_rate_is_reported(engine):
    record = _usd_record()
    record = replace(record, financial=replace(record.financial, currency_code="EUR"))
    result = engine.process(record)

    assert result.is_valid
    assert result.exchange_quote.is_fallback
    assert [(f.path, f.kind) for f in result.warnings] == [("financial.exchange_rate", FindingKind.REFERENCE_DATA)]
    assert result.payments[0].customs_value == Decimal("20250000.00")


def test_unknown_hs_code_is_a_warning(engine):
    result = engine.process(import_record(car_item(hs_code="9999999999")))
    assert result.is_valid
    assert [(f.path, f.kind) for f in result.warnings] == [("items[0].hs_code", FindingKind.REFERENCE_DATA)]
    assert result.payments[0].duty_rate == Decimal("15")


def test_item_that_cannot_be_calculated_is_reported_not_zeroed(engine):
    record = import_record(car_item(), car_item(item_number=2, customs_value=None))
    result = engine.process(record)

    assert not result.is_valid
    assert [(f.path, f.kind) for f in result.errors] == [("items[1].customs_value", FindingKind.MISSING_VALUE)]
    assert len(result.payments) == 1
    assert result.record.items[1].duty_amount is None
    assert result.record.items[0].total_payment == Decimal("57698.00")


def test_failed_item_drops_amounts_from_an_earlier_draft(engine):
    draft = car_item(
        item_number=2,
        customs_value=None,
        duty_amount=Decimal("999.00"),
        vat_amount=Decimal("120.00"),
        fee_amount=Decimal("50000.00"),
        total_payment=Decimal("51119.00"),
    )
    result = engine.process(import_record(car_item(), draft))

    failed = result.record.items[1]
    assert (failed.duty_amount, failed.vat_amount, failed.fee_amount, failed.total_payment) == (None,) * 4
    assert failed.hs_code == "8703220000"
    totals = result.record.totals
    items = result.record.items
    assert totals.total_duty == sum(i.duty_amount for i in items if i.duty_amount is not None)
    assert totals.total_payment == items[0].total_payment == Decimal("57698.00")


def test_non_finite_value_is_calculation_error(engine):
    result = engine.process(import_record(car_item(customs_value=Decimal("NaN"))))
    kinds = [(f.path, f.kind) for f in result.errors]
    assert ("items[0].customs_value", FindingKind.FIELD_FORMAT) in kinds
    assert ("items[0].customs_value", FindingKind.CALCULATION_OVERFLOW) in kinds
    assert result.payments == ()


def test_findings_and_corrections_are_combined(engine):
    record = import_record(
        car_item(origin_country_code="kz"),
        consignee=Party(name="Tashkent Motors LLC", tin="12345", country_code="UZ"),
    )
    result = engine.process(record)

    assert [(f.path, f.severity) for f in result.findings] == [("consignee.tin", Severity.ERROR)]
    assert [c.path for c in result.corrections] == ["items[0].origin_country_code"]
    assert result.record.consignee.tin == "12345"
    assert result.payments[0].preference_group is PreferenceGroup.EAEU
    assert result.payments[0].total_payment == Decimal("52309.40")


def test_report_uses_camel_case(engine):
    record = import_record(consignee=Party(name="Tashkent Motors LLC", tin="12345", country_code="UZ"))
    report = engine.process(record).report().model_dump(by_alias=True)
    assert report["isValid"] is False
    assert report["errors"][0]["path"] == "consignee.tin"
    assert report["errors"][0]["kind"] == "FieldFormatError"


def test_validation_report_without_payments(engine):
    report = engine.validation_report(import_record(car_item(origin_country_code="cn ")))
    assert report.is_valid
    assert [c.path for c in report.corrections] == ["items[0].origin_country_code"]
    assert report.corrections[0].corrected_value == "CN"


def test_thread_pool_keeps_item_order(store, engine_config):
    items = [
        car_item(item_number=n, customs_value=Decimal(1000 * n), origin_country_code=country)
        for n, country in zip(range(1, 9), ["CN", "KZ", "TJ", "DE", "RU", "US", "KG", "TR"])
    ]
    record = import_record(*items)
    sequential = DeclarationEngine(gateway=store, config=engine_config).process(record)
    pooled = DeclarationEngine(gateway=store, config=engine_config, max_workers=4).process(record)

    assert pooled == sequential
    assert [p.item_number for p in pooled.payments] == list(range(1, 9))


def test_process_form(engine):
    result = engine.process_form(canonical_to_form(import_record()))
    assert result.totals.grand_total == Decimal("57698.00")


def test_processing_is_logged(engine, caplog):
    caplog.set_level(logging.INFO, logger="uzgtd")
    engine.process(import_record())
    events = [r for r in caplog.records if r.getMessage() == "declaration.processed"]
    assert len(events) == 1
    assert events[0].payload["declaration_id"] == "decl-0001"
    assert events[0].payload["errors"] == 0


def test_quote_item(engine):
    quote = engine.quote_item("8703220000", Decimal("1500.00"), "CN", "USD", "2025-01-15")
    assert quote.rate_quote.found
    assert quote.exchange_quote.source == "exact"
    assert quote.payment.total_payment == Decimal("7760000.00")

    eaeu = engine.quote_item("8703220000", Decimal("1500.00"), "BY", "USD", "2025-01-15")
    assert eaeu.payment.duty_amount == 0
    assert eaeu.payment.preference_group is PreferenceGroup.EAEU


def test_quote_item_rejects_non_finite_value(engine):
    with pytest.raises(CalculationOverflow):
        engine.quote_item("8703220000", Decimal("Infinity"))
