"""Builders for canonical declarations used across the engine tests."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from uzgtd.declaration.models import (
    DeclarationItem,
    DeclarationRecord,
    FinancialTerms,
    Logistics,
    Party,
)


def car_item(**overrides) -> DeclarationItem:
    item = DeclarationItem(
        item_number=1,
        hs_code="8703220000",
        description="Passenger car, petrol engine 1400 cc",
        origin_country_code="CN",
        gross_weight=Decimal("1250.000"),
        net_weight=Decimal("1180.000"),
        quantity=Decimal("1"),
        unit_code="796",
        invoice_value=Decimal("19245.00"),
        customs_value=Decimal("19245.00"),
        procedure_code="4000",
        package_type="NE",
        package_quantity=Decimal("1"),
    )
    return replace(item, **overrides)


def import_record(*items: DeclarationItem, **overrides) -> DeclarationRecord:
    items = items or (car_item(),)
    record = DeclarationRecord(
        declaration_id="decl-0001",
        declaration_number="26001/15012025/0000123",
        declaration_type="IMPORT",
        customs_regime_code="40",
        declaration_date="2025-01-15",
        exporter=Party(name="Shanghai Auto Export Co", address="Pudong, Shanghai", country_code="CN"),
        consignee=Party(name="Tashkent Motors LLC", address="Tashkent", tin="123456789", country_code="UZ"),
        declarant=Party(name="Broker Service LLC", tin="987654321", country_code="UZ"),
        financial=FinancialTerms(
            currency_code="UZS",
            invoice_total=sum((i.invoice_value or Decimal("0") for i in items), Decimal("0")),
            incoterms_code="CIP",
            incoterms_place="TASHKENT",
            transaction_nature_code="01",
        ),
        logistics=Logistics(
            transport_mode_code="30",
            inland_transport_mode_code="30",
            dispatch_country_code="CN",
            origin_country_code="CN",
            destination_country_code="UZ",
            trading_country_code="CN",
            customs_office_code="26001",
        ),
        items=tuple(items),
    )
    return replace(record, **overrides)


