from decimal import Decimal

import pytest
from declaration_factories import car_item, import_record

from uzgtd.declaration.adapters import (
    CONTINUATION_ITEM_ROWS,
    DUTY_PAYMENT_CODE,
    FEE_PAYMENT_CODE,
    VAT_PAYMENT_CODE,
    canonical_to_form,
    canonical_to_print_model,
    canonical_to_xml_model,
    continuation_sheet_count,
    form_to_canonical,
)
from uzgtd.declaration.schemas import DeclarationForm, DeclarationItemForm
from uzgtd.declaration.validator import errors_only, validate


def _form() -> DeclarationForm:
    return DeclarationForm(
        declaration_id="decl-42",
        declaration_type="IMPORT",
        customs_regime_code="40",
        declaration_date="2025-01-15",
        exporter_name="Shanghai Auto Export Co",
        exporter_country="CN",
        consignee_name="Tashkent Motors LLC",
        consignee_tin="123456789",
        consignee_country="UZ",
        currency="USD",
        invoice_total="1500.00",
        exchange_rate="12850",
        incoterms_code="FCA",
        incoterms_place="SHANGHAI",
        transport_mode="30",
        origin_country="CN",
        destination_country="UZ",
        total_gross_weight="1250.500",
        items=[
            DeclarationItemForm(
                item_number="1",
                hs_code="8703220000",
                description="Passenger car",
                origin_country="CN",
                gross_weight="1250.500",
                net_weight="1180.250",
                quantity="1",
                unit_code="796",
                invoice_value="1500.00",
                customs_value="1500.00",
                package_quantity="1",
            )
        ],
    )


def test_form_round_trip():
    form = _form()
    assert canonical_to_form(form_to_canonical(form)) == form


def test_blank_and_padded_numbers_are_normalized_once():
    form = _form().model_copy(update={"invoice_total": "", "exchange_rate": "  "})
    form.items[0] = form.items[0].model_copy(update={"item_number": "01", "customs_value": ""})

    normalized = canonical_to_form(form_to_canonical(form))
    assert normalized.invoice_total is None
    assert normalized.exchange_rate is None
    assert normalized.items[0].item_number == "1"
    assert normalized.items[0].customs_value is None
    assert normalized.items[0].description == form.items[0].description
    assert canonical_to_form(form_to_canonical(normalized)) == normalized


def test_canonical_round_trip():
    record = import_record(car_item(), car_item(item_number=2, hs_code=None))
    assert form_to_canonical(canonical_to_form(record)) == record


def test_form_values_become_typed_fields():
    record = form_to_canonical(_form())
    assert record.financial.invoice_total == Decimal("1500.00")
    assert record.logistics.origin_country_code == "CN"
    assert record.items[0].item_number == 1
    assert record.items[0].net_weight == Decimal("1180.250")
    assert record.items[0].statistical_value is None


def test_unparseable_form_number_is_flagged_not_dropped():
    form = _form().model_copy(update={"invoice_total": "1 500,00"})
    record = form_to_canonical(form)
    assert record.financial.invoice_total.is_nan()
    assert [f.path for f in errors_only(validate(record))] == ["financial.invoice_total"]


def test_non_integer_item_number_is_treated_as_missing():
    form = _form()
    form.items[0] = form.items[0].model_copy(update={"item_number": "first"})
    assert form_to_canonical(form).items[0].item_number is None


@pytest.mark.parametrize("count, sheets", [(0, 0), (1, 0), (2, 1), (4, 1), (5, 2), (7, 2), (8, 3)])
def test_continuation_sheet_count(count, sheets):
    assert continuation_sheet_count(count) == sheets


def test_print_model_overflow(engine):
    items = [car_item(item_number=n, description=f"Car {n}") for n in range(1, 6)]
    result = engine.process(import_record(*items))
    model = canonical_to_print_model(result.record)

    assert model.total_items == 5
    assert model.primary_item.description == "Car 1"
    assert [item.description for item in model.continuation_items] == ["Car 2", "Car 3", "Car 4", "Car 5"]
    assert [len(sheet) for sheet in model.continuation_sheets] == [CONTINUATION_ITEM_ROWS, 1]
    assert model.additional_sheets == 2
    assert model.total_sheets == 3


def test_print_model_header(engine):
    model = canonical_to_print_model(engine.process(import_record()).record)
    assert model.declaration_type_label == "ИМ"
    assert model.declaration_date == "15.01.2025"
    assert model.exporter.country_name == "КИТАЙ"
    assert model.incoterms == "CIP TASHKENT"
    assert model.total_gross_weight == "1250.000"
    assert model.total_payment == "57698.00"


def test_print_payment_lines(engine):
    record = import_record(car_item(), car_item(item_number=2, origin_country_code="KZ"))
    model = canonical_to_print_model(engine.process(record).record)

    mfn_lines = {line.type_code: line for line in model.primary_item.payments}
    assert list(mfn_lines) == [FEE_PAYMENT_CODE, DUTY_PAYMENT_CODE, VAT_PAYMENT_CODE]
    assert mfn_lines[DUTY_PAYMENT_CODE].rate == "25"
    assert mfn_lines[DUTY_PAYMENT_CODE].amount == "4811.25"
    assert mfn_lines[VAT_PAYMENT_CODE].base == "24056.25"
    assert mfn_lines[FEE_PAYMENT_CODE].amount == "50000.00"

    eaeu_lines = [line.type_code for line in model.continuation_items[0].payments]
    assert eaeu_lines == [FEE_PAYMENT_CODE, VAT_PAYMENT_CODE]


def test_print_model_without_items():
    model = canonical_to_print_model(import_record(items=()))
    assert model.primary_item is None
    assert model.continuation_sheets == ()
    assert model.total_sheets == 1


def test_xml_model_formats_numbers():
    record = import_record(
        car_item(
            gross_weight=Decimal("1250"),
            net_weight=Decimal("1180.5"),
            customs_value=Decimal("19245"),
            invoice_value=Decimal("NaN"),
            quantity=Decimal("2.50"),
        )
    )
    xml = canonical_to_xml_model(record)
    item = xml["items"][0]

    assert xml["declaration_date"] == "2025-01-15"
    assert xml["consignee"]["tin"] == "123456789"
    assert xml["financial"]["currency_code"] == "UZS"
    assert item["item_number"] == "1"
    assert item["gross_weight"] == "1250.000"
    assert item["net_weight"] == "1180.500"
    assert item["customs_value"] == "19245.00"
    assert item["quantity"] == "2.5"
    assert item["invoice_value"] is None
    assert item["duty_amount"] is None
    assert xml["totals"]["total_payment"] is None


def test_xml_model_mirrors_every_field():
    xml = canonical_to_xml_model(import_record())
    assert set(xml) == set(canonical_to_xml_model(import_record(items=())))
    assert set(xml["items"][0]) >= {"hs_code", "vat_base", "fee_amount", "total_payment"}
    assert set(xml["logistics"]) == {
        "transport_mode_code",
        "inland_transport_mode_code",
        "dispatch_country_code",
        "origin_country_code",
        "destination_country_code",
        "trading_country_code",
        "customs_office_code",
    }
