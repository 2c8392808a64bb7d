"""Translation between the canonical record and its external shapes.

* the flat UI form (:class:`~uzgtd.declaration.schemas.DeclarationForm`),
* the print model consumed by the PDF renderer,
* the XML model consumed by the XML exporter.

Adapters never validate or correct. The form mapping is driven by one binding
table per level; :func:`_check_bindings` runs at import time and refuses to
load if a canonical or form field is left unmapped.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any

from uzgtd.declaration.codes import country_name
from uzgtd.declaration.errors import ConfigurationError
from uzgtd.declaration.models import (
    DeclarationItem,
    DeclarationRecord,
    DeclarationTotals,
    DeclarationType,
    FinancialTerms,
    Logistics,
    Party,
    fold_declaration_type,
)
from uzgtd.declaration.money import round2, round3, to_decimal
from uzgtd.declaration.schemas import DeclarationForm, DeclarationItemForm

TEXT = "text"
DECIMAL = "decimal"
INTEGER = "integer"

PRIMARY_ITEM_ROWS = 1
CONTINUATION_ITEM_ROWS = 3

_INTEGER_RE = re.compile(r"^-?\d+$")

_SECTIONS: dict[str, type] = {
    "exporter": Party,
    "consignee": Party,
    "declarant": Party,
    "financial": FinancialTerms,
    "logistics": Logistics,
    "totals": DeclarationTotals,
}

# Numeric kinds hold canonical values, so a form only survives
# form -> canonical -> form unchanged when its numbers are already canonical:
# blank DECIMAL and INTEGER fields come back as None and "01" comes back as "1".
# canonical_to_form output is always a fixed point.
#
# (form key, canonical section or None for top level, canonical field, kind)
HEADER_BINDINGS: tuple[tuple[str, str | None, str, str], ...] = (
    ("declaration_id", None, "declaration_id", TEXT),
    ("declaration_number", None, "declaration_number", TEXT),
    ("declaration_type", None, "declaration_type", TEXT),
    ("customs_regime_code", None, "customs_regime_code", TEXT),
    ("declaration_date", None, "declaration_date", TEXT),
    ("exporter_name", "exporter", "name", TEXT),
    ("exporter_address", "exporter", "address", TEXT),
    ("exporter_tin", "exporter", "tin", TEXT),
    ("exporter_country", "exporter", "country_code", TEXT),
    ("consignee_name", "consignee", "name", TEXT),
    ("consignee_address", "consignee", "address", TEXT),
    ("consignee_tin", "consignee", "tin", TEXT),
    ("consignee_country", "consignee", "country_code", TEXT),
    ("declarant_name", "declarant", "name", TEXT),
    ("declarant_address", "declarant", "address", TEXT),
    ("declarant_tin", "declarant", "tin", TEXT),
    ("declarant_country", "declarant", "country_code", TEXT),
    ("currency", "financial", "currency_code", TEXT),
    ("invoice_total", "financial", "invoice_total", DECIMAL),
    ("exchange_rate", "financial", "exchange_rate", DECIMAL),
    ("incoterms_code", "financial", "incoterms_code", TEXT),
    ("incoterms_place", "financial", "incoterms_place", TEXT),
    ("transaction_nature_code", "financial", "transaction_nature_code", TEXT),
    ("transport_mode", "logistics", "transport_mode_code", TEXT),
    ("inland_transport_mode", "logistics", "inland_transport_mode_code", TEXT),
    ("dispatch_country", "logistics", "dispatch_country_code", TEXT),
    ("origin_country", "logistics", "origin_country_code", TEXT),
    ("destination_country", "logistics", "destination_country_code", TEXT),
    ("trading_country", "logistics", "trading_country_code", TEXT),
    ("customs_office", "logistics", "customs_office_code", TEXT),
    ("total_gross_weight", "totals", "total_gross_weight", DECIMAL),
    ("total_net_weight", "totals", "total_net_weight", DECIMAL),
    ("total_packages", "totals", "total_packages", DECIMAL),
    ("total_customs_value", "totals", "total_customs_value", DECIMAL),
    ("total_duty", "totals", "total_duty", DECIMAL),
    ("total_vat", "totals", "total_vat", DECIMAL),
    ("total_excise", "totals", "total_excise", DECIMAL),
    ("total_fee", "totals", "total_fee", DECIMAL),
    ("total_payment", "totals", "total_payment", DECIMAL),
)

# (form key, canonical item field, kind)
ITEM_BINDINGS: tuple[tuple[str, str, str], ...] = (
    ("item_number", "item_number", INTEGER),
    ("hs_code", "hs_code", TEXT),
    ("description", "description", TEXT),
    ("origin_country", "origin_country_code", TEXT),
    ("gross_weight", "gross_weight", DECIMAL),
    ("net_weight", "net_weight", DECIMAL),
    ("quantity", "quantity", DECIMAL),
    ("unit_code", "unit_code", TEXT),
    ("invoice_value", "invoice_value", DECIMAL),
    ("customs_value", "customs_value", DECIMAL),
    ("statistical_value", "statistical_value", DECIMAL),
    ("procedure_code", "procedure_code", TEXT),
    ("preference_code", "preference_code", TEXT),
    ("package_type", "package_type", TEXT),
    ("package_quantity", "package_quantity", DECIMAL),
    ("duty_base", "duty_base", DECIMAL),
    ("duty_rate", "duty_rate", DECIMAL),
    ("duty_amount", "duty_amount", DECIMAL),
    ("vat_base", "vat_base", DECIMAL),
    ("vat_rate", "vat_rate", DECIMAL),
    ("vat_amount", "vat_amount", DECIMAL),
    ("excise_rate", "excise_rate", DECIMAL),
    ("excise_amount", "excise_amount", DECIMAL),
    ("fee_amount", "fee_amount", DECIMAL),
    ("total_payment", "total_payment", DECIMAL),
)


def _check_bindings() -> None:
    canonical_header = {
        (None, f.name) for f in fields(DeclarationRecord) if f.name not in _SECTIONS and f.name != "items"
    }
    for section, cls in _SECTIONS.items():
        canonical_header |= {(section, f.name) for f in fields(cls)}
    bound_header = {(section, name) for _, section, name, _ in HEADER_BINDINGS}
    form_header = set(DeclarationForm.model_fields) - {"items"}
    bound_form_header = {key for key, _, _, _ in HEADER_BINDINGS}

    canonical_item = {f.name for f in fields(DeclarationItem)}
    bound_item = {name for _, name, _ in ITEM_BINDINGS}
    form_item = set(DeclarationItemForm.model_fields)
    bound_form_item = {key for key, _, _ in ITEM_BINDINGS}

    problems = []
    if canonical_header != bound_header:
        problems.append(f"header canonical fields unmapped: {sorted(map(str, canonical_header ^ bound_header))}")
    if form_header != bound_form_header:
        problems.append(f"header form keys unmapped: {sorted(form_header ^ bound_form_header)}")
    if canonical_item != bound_item:
        problems.append(f"item canonical fields unmapped: {sorted(canonical_item ^ bound_item)}")
    if form_item != bound_form_item:
        problems.append(f"item form keys unmapped: {sorted(form_item ^ bound_form_item)}")
    if problems:
        raise ConfigurationError("; ".join(problems))


_check_bindings()


# ---------------------------------------------------------------------------
# Form <-> canonical
# ---------------------------------------------------------------------------
def _parse(text: str | None, kind: str) -> Any:
    if kind == TEXT or text is None:
        return text
    if kind == INTEGER:
        stripped = text.strip()
        return int(stripped) if _INTEGER_RE.match(stripped) else None
    return to_decimal(text)


def _render(value: Any, kind: str) -> str | None:
    if value is None:
        return None
    if kind == DECIMAL:
        return format(value, "f")
    return str(value)


def form_to_canonical(form: DeclarationForm) -> DeclarationRecord:
    """Map every form key onto the canonical record; unparseable numbers become NaN."""

    top: dict[str, Any] = {}
    sections: dict[str, dict[str, Any]] = {name: {} for name in _SECTIONS}
    for key, section, name, kind in HEADER_BINDINGS:
        value = _parse(getattr(form, key), kind)
        if section is None:
            top[name] = value
        else:
            sections[section][name] = value

    items = tuple(
        DeclarationItem(**{name: _parse(getattr(line, key), kind) for key, name, kind in ITEM_BINDINGS})
        for line in form.items
    )
    return DeclarationRecord(
        **top,
        **{section: _SECTIONS[section](**values) for section, values in sections.items()},
        items=items,
    )


def canonical_to_form(record: DeclarationRecord) -> DeclarationForm:
    values: dict[str, Any] = {}
    for key, section, name, kind in HEADER_BINDINGS:
        source = record if section is None else getattr(record, section)
        values[key] = _render(getattr(source, name), kind)
    values["items"] = [
        DeclarationItemForm(**{key: _render(getattr(item, name), kind) for key, name, kind in ITEM_BINDINGS})
        for item in record.items
    ]
    return DeclarationForm(**values)


# ---------------------------------------------------------------------------
# Print model
# ---------------------------------------------------------------------------
_DECLARATION_LABELS = {
    DeclarationType.IMPORT: "ИМ",
    DeclarationType.EXPORT: "ЭК",
    DeclarationType.TRANSIT: "ТР",
}

FEE_PAYMENT_CODE = "10"
DUTY_PAYMENT_CODE = "20"
EXCISE_PAYMENT_CODE = "27"
VAT_PAYMENT_CODE = "29"
PAYMENT_METHOD = "БН"


def _money(value: Decimal | None) -> str:
    if value is None or not value.is_finite():
        return ""
    return format(round2(value), "f")


def _weight(value: Decimal | None) -> str:
    if value is None or not value.is_finite():
        return ""
    return format(round3(value), "f")


def _plain(value: Decimal | None) -> str:
    if value is None or not value.is_finite():
        return ""
    return format(value.normalize(), "f")


def _print_date(value: str | None) -> str:
    if not value:
        return ""
    try:
        return date.fromisoformat(value.strip()).strftime("%d.%m.%Y")
    except ValueError:
        return value


@dataclass(frozen=True)
class PrintParty:
    name: str
    address: str
    tin: str
    country_code: str
    country_name: str


@dataclass(frozen=True)
class PrintPaymentLine:
    """One row of box 47 (calculation of payments)."""

    type_code: str
    base: str
    rate: str
    amount: str
    method: str = PAYMENT_METHOD


@dataclass(frozen=True)
class PrintItem:
    item_number: str
    hs_code: str
    description: str
    origin_country_code: str
    origin_country_name: str
    gross_weight: str
    net_weight: str
    quantity: str
    unit_code: str
    package_type: str
    package_quantity: str
    procedure_code: str
    preference_code: str
    invoice_value: str
    customs_value: str
    statistical_value: str
    payments: tuple[PrintPaymentLine, ...]
    total_payment: str


@dataclass(frozen=True)
class PrintModel:
    """Everything the TD1 main sheet and TD2 continuation sheets display."""

    declaration_type: str
    declaration_type_label: str
    customs_regime_code: str
    declaration_number: str
    declaration_date: str
    exporter: PrintParty
    consignee: PrintParty
    declarant: PrintParty
    currency_code: str
    invoice_total: str
    exchange_rate: str
    incoterms: str
    transaction_nature_code: str
    transport_mode_code: str
    inland_transport_mode_code: str
    dispatch_country: str
    origin_country: str
    destination_country: str
    trading_country: str
    customs_office_code: str
    total_items: int
    total_packages: str
    total_gross_weight: str
    total_net_weight: str
    total_customs_value: str
    total_duty: str
    total_vat: str
    total_excise: str
    total_fee: str
    total_payment: str
    primary_item: PrintItem | None
    continuation_items: tuple[PrintItem, ...]
    continuation_sheets: tuple[tuple[PrintItem, ...], ...]

    @property
    def additional_sheets(self) -> int:
        return len(self.continuation_sheets)

    @property
    def total_sheets(self) -> int:
        return 1 + self.additional_sheets


def _print_party(party: Party) -> PrintParty:
    return PrintParty(
        name=party.name or "",
        address=party.address or "",
        tin=party.tin or "",
        country_code=party.country_code or "",
        country_name=country_name(party.country_code),
    )


def _positive(value: Decimal | None) -> bool:
    return value is not None and value.is_finite() and value > 0


def _payment_lines(item: DeclarationItem) -> tuple[PrintPaymentLine, ...]:
    lines = [
        PrintPaymentLine(FEE_PAYMENT_CODE, _money(item.duty_base), "", _money(item.fee_amount)),
    ]
    if _positive(item.duty_amount):
        lines.append(
            PrintPaymentLine(DUTY_PAYMENT_CODE, _money(item.duty_base), _plain(item.duty_rate), _money(item.duty_amount))
        )
    if _positive(item.excise_amount):
        lines.append(
            PrintPaymentLine(EXCISE_PAYMENT_CODE, _money(item.duty_base), _plain(item.excise_rate), _money(item.excise_amount))
        )
    if _positive(item.vat_amount):
        lines.append(
            PrintPaymentLine(VAT_PAYMENT_CODE, _money(item.vat_base), _plain(item.vat_rate), _money(item.vat_amount))
        )
    return tuple(lines)


def _print_item(item: DeclarationItem) -> PrintItem:
    return PrintItem(
        item_number="" if item.item_number is None else str(item.item_number),
        hs_code=item.hs_code or "",
        description=item.description or "",
        origin_country_code=item.origin_country_code or "",
        origin_country_name=country_name(item.origin_country_code),
        gross_weight=_weight(item.gross_weight),
        net_weight=_weight(item.net_weight),
        quantity=_plain(item.quantity),
        unit_code=item.unit_code or "",
        package_type=item.package_type or "",
        package_quantity=_plain(item.package_quantity),
        procedure_code=item.procedure_code or "",
        preference_code=item.preference_code or "",
        invoice_value=_money(item.invoice_value),
        customs_value=_money(item.customs_value),
        statistical_value=_money(item.statistical_value),
        payments=_payment_lines(item),
        total_payment=_money(item.total_payment),
    )


def continuation_sheet_count(item_count: int) -> int:
    """Number of TD2 sheets needed for *item_count* items."""

    overflow = max(0, item_count - PRIMARY_ITEM_ROWS)
    return math.ceil(overflow / CONTINUATION_ITEM_ROWS)


def canonical_to_print_model(record: DeclarationRecord) -> PrintModel:
    printed = [_print_item(item) for item in record.items]
    primary = printed[0] if printed else None
    overflow = tuple(printed[PRIMARY_ITEM_ROWS:])
    sheets = tuple(
        overflow[start:start + CONTINUATION_ITEM_ROWS]
        for start in range(0, len(overflow), CONTINUATION_ITEM_ROWS)
    )

    kind = fold_declaration_type(record.declaration_type)
    financial, logistics, totals = record.financial, record.logistics, record.totals
    incoterms = " ".join(part for part in (financial.incoterms_code, financial.incoterms_place) if part)
    return PrintModel(
        declaration_type=kind.value if kind else (record.declaration_type or ""),
        declaration_type_label=_DECLARATION_LABELS.get(kind, "") if kind else "",
        customs_regime_code=record.customs_regime_code or "",
        declaration_number=record.declaration_number or "",
        declaration_date=_print_date(record.declaration_date),
        exporter=_print_party(record.exporter),
        consignee=_print_party(record.consignee),
        declarant=_print_party(record.declarant),
        currency_code=financial.currency_code or "",
        invoice_total=_money(financial.invoice_total),
        exchange_rate=_plain(financial.exchange_rate),
        incoterms=incoterms,
        transaction_nature_code=financial.transaction_nature_code or "",
        transport_mode_code=logistics.transport_mode_code or "",
        inland_transport_mode_code=logistics.inland_transport_mode_code or "",
        dispatch_country=country_name(logistics.dispatch_country_code),
        origin_country=country_name(logistics.origin_country_code),
        destination_country=country_name(logistics.destination_country_code),
        trading_country=country_name(logistics.trading_country_code),
        customs_office_code=logistics.customs_office_code or "",
        total_items=len(record.items),
        total_packages=_plain(totals.total_packages),
        total_gross_weight=_weight(totals.total_gross_weight),
        total_net_weight=_weight(totals.total_net_weight),
        total_customs_value=_money(totals.total_customs_value),
        total_duty=_money(totals.total_duty),
        total_vat=_money(totals.total_vat),
        total_excise=_money(totals.total_excise),
        total_fee=_money(totals.total_fee),
        total_payment=_money(totals.total_payment),
        primary_item=primary,
        continuation_items=overflow,
        continuation_sheets=sheets,
    )


# ---------------------------------------------------------------------------
# XML model
# ---------------------------------------------------------------------------
_WEIGHT_FIELDS = frozenset({"gross_weight", "net_weight", "total_gross_weight", "total_net_weight"})
_PLAIN_FIELDS = frozenset(
    {
        "exchange_rate",
        "quantity",
        "package_quantity",
        "total_packages",
        "duty_rate",
        "vat_rate",
        "excise_rate",
    }
)
_DATE_FIELDS = frozenset({"declaration_date"})


def _xml_value(name: str, value: Any) -> Any:
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        if name in _WEIGHT_FIELDS:
            return _weight(value)
        if name in _PLAIN_FIELDS:
            return _plain(value)
        return _money(value)
    if name in _DATE_FIELDS and value is not None:
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _xml_mirror(obj: Any) -> dict[str, Any]:
    mirrored: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if f.name == "items":
            mirrored[f.name] = [_xml_mirror(item) for item in value]
        elif f.name in _SECTIONS:
            mirrored[f.name] = _xml_mirror(value)
        else:
            mirrored[f.name] = _xml_value(f.name, value)
    return mirrored


def canonical_to_xml_model(record: DeclarationRecord) -> dict[str, Any]:
    """Return the XML model: a field-for-field mirror of *record* as text values.

    Keys are the canonical field names, nested exactly as in the record. Money
    is rendered with 2 decimals, weights with 3, dates as yyyy-MM-dd. Absent
    values stay ``None`` so the exporter can omit the element.
    """

    return _xml_mirror(record)
