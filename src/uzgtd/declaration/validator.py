"""Field validator for canonical declaration records.

The validator never changes its input and never stops at the first problem:
every finding is collected and returned in document order, header fields
first, then the totals block, then items in list order.
"""

from __future__ import annotations

import re
from dataclasses import fields
from datetime import date
from decimal import Decimal
from typing import Iterable

from uzgtd.declaration.codes import INCOTERMS_CODES, TRANSPORT_MODE_CODES, UNIT_CODES
from uzgtd.declaration.errors import FindingKind
from uzgtd.declaration.models import (
    DeclarationItem,
    DeclarationRecord,
    DeclarationTotals,
    FinancialTerms,
    Logistics,
    Party,
    Severity,
    ValidationFinding,
    fold_declaration_type,
    item_path,
)
from uzgtd.declaration.money import sum_present

TIN_RE = re.compile(r"^\d{9}$")
COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
HS_CODE_RE = re.compile(r"^\d{10}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ITEM_PATH_RE = re.compile(r"^items\[(\d+)\](?:\.(\w+))?$")

AGGREGATE_TOLERANCE = Decimal("0.01")

_PARTIES = ("exporter", "consignee", "declarant")
_REQUIRED_PARTY_NAMES = ("exporter", "consignee")

# totals field -> item field it aggregates
_AGGREGATES: tuple[tuple[str, str], ...] = (
    ("total_gross_weight", "gross_weight"),
    ("total_net_weight", "net_weight"),
    ("total_packages", "package_quantity"),
    ("total_customs_value", "customs_value"),
    ("total_duty", "duty_amount"),
    ("total_vat", "vat_amount"),
    ("total_excise", "excise_amount"),
    ("total_fee", "fee_amount"),
    ("total_payment", "total_payment"),
)


_NESTED_SECTIONS = {
    "exporter": Party,
    "consignee": Party,
    "declarant": Party,
    "financial": FinancialTerms,
    "logistics": Logistics,
    "totals": DeclarationTotals,
}


def _header_order() -> dict[str, int]:
    paths: list[str] = []
    for top in fields(DeclarationRecord):
        if top.name == "items":
            continue
        if top.name in _NESTED_SECTIONS:
            paths.extend(f"{top.name}.{f.name}" for f in fields(_NESTED_SECTIONS[top.name]))
        else:
            paths.append(top.name)
    paths.append("items")
    return {path: index for index, path in enumerate(paths)}


_HEADER_ORDER = _header_order()
_ITEM_FIELD_ORDER = {f.name: index for index, f in enumerate(fields(DeclarationItem))}


def _path_rank(path: str) -> tuple[int, int, int]:
    match = _ITEM_PATH_RE.match(path)
    if match:
        return (1, int(match.group(1)), _ITEM_FIELD_ORDER.get(match.group(2) or "", -1))
    return (0, _HEADER_ORDER.get(path, len(_HEADER_ORDER)), 0)


def sort_findings(findings: Iterable[ValidationFinding]) -> list[ValidationFinding]:
    """Order findings by document position; findings on one path keep rule order."""

    return sorted(findings, key=lambda finding: _path_rank(finding.path))


class _Collector:
    def __init__(self) -> None:
        self.findings: list[ValidationFinding] = []

    def error(self, path: str, message: str, kind: FindingKind = FindingKind.FIELD_FORMAT) -> None:
        self.findings.append(ValidationFinding(path, message, Severity.ERROR, kind))

    def warning(self, path: str, message: str, kind: FindingKind = FindingKind.FIELD_FORMAT) -> None:
        self.findings.append(ValidationFinding(path, message, Severity.WARNING, kind))

    def number(self, path: str, value: Decimal | None, *, whole: bool = False) -> None:
        if value is None:
            return
        if not value.is_finite():
            self.error(path, "Value must be a finite number")
            return
        if value < 0:
            self.error(path, "Value must not be negative")
        if whole and value != value.to_integral_value():
            self.error(path, "Value must be a whole number")

    def country(self, path: str, value: str | None) -> None:
        if value is None:
            return
        if not COUNTRY_RE.match(value.strip().upper()):
            self.error(path, "Country code must be two letters (ISO 3166-1 alpha-2)")


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _validate_header(record: DeclarationRecord, out: _Collector) -> None:
    if _is_blank(record.declaration_type):
        out.warning("declaration_type", "Declaration type is not specified", FindingKind.MISSING_VALUE)
    elif fold_declaration_type(record.declaration_type) is None:
        out.error("declaration_type", "Declaration type must be IMPORT, EXPORT or TRANSIT")

    if record.declaration_date is not None:
        raw = record.declaration_date.strip()
        valid = bool(DATE_RE.match(raw))
        if valid:
            try:
                date.fromisoformat(raw)
            except ValueError:
                valid = False
        if not valid:
            out.error("declaration_date", "Date must be a calendar date in yyyy-MM-dd format")

    for role in _PARTIES:
        party: Party = getattr(record, role)
        if role in _REQUIRED_PARTY_NAMES and _is_blank(party.name):
            out.warning(f"{role}.name", "Party name is missing", FindingKind.MISSING_VALUE)
        if party.tin is not None and not TIN_RE.match(party.tin):
            out.error(f"{role}.tin", "Tax identification number must be exactly 9 digits")
        out.country(f"{role}.country_code", party.country_code)

    financial = record.financial
    if _is_blank(financial.currency_code):
        out.warning("financial.currency_code", "Currency code is missing", FindingKind.MISSING_VALUE)
    elif not CURRENCY_RE.match(financial.currency_code.strip().upper()):
        out.error("financial.currency_code", "Currency code must be three letters (ISO 4217)")
    out.number("financial.invoice_total", financial.invoice_total)
    out.number("financial.exchange_rate", financial.exchange_rate)
    if financial.incoterms_code is not None and financial.incoterms_code.strip().upper() not in INCOTERMS_CODES:
        out.warning("financial.incoterms_code", f"Unknown Incoterms code {financial.incoterms_code!r}")

    logistics = record.logistics
    for name in ("transport_mode_code", "inland_transport_mode_code"):
        value = getattr(logistics, name)
        if value is not None and value.strip() not in TRANSPORT_MODE_CODES:
            out.warning(f"logistics.{name}", f"Unknown transport mode code {value!r}")
    for name in (
        "dispatch_country_code",
        "origin_country_code",
        "destination_country_code",
        "trading_country_code",
    ):
        out.country(f"logistics.{name}", getattr(logistics, name))

    for f in fields(DeclarationTotals):
        out.number(f"totals.{f.name}", getattr(record.totals, f.name), whole=f.name == "total_packages")


def _validate_item(index: int, item: DeclarationItem, out: _Collector) -> None:
    if _is_blank(item.hs_code):
        out.warning(item_path(index, "hs_code"), "HS code is missing", FindingKind.MISSING_VALUE)
    elif not HS_CODE_RE.match(item.hs_code.strip()):
        out.warning(item_path(index, "hs_code"), "HS code should have 10 digits")

    if _is_blank(item.description):
        out.warning(item_path(index, "description"), "Goods description is missing", FindingKind.MISSING_VALUE)

    out.country(item_path(index, "origin_country_code"), item.origin_country_code)

    for f in fields(DeclarationItem):
        value = getattr(item, f.name)
        if isinstance(value, Decimal):
            out.number(item_path(index, f.name), value, whole=f.name == "package_quantity")

    if item.unit_code is not None and item.unit_code.strip().upper() not in UNIT_CODES:
        out.warning(item_path(index, "unit_code"), f"Unknown unit of measure {item.unit_code!r}")

    gross, net = item.gross_weight, item.net_weight
    if gross is not None and net is not None and gross.is_finite() and net.is_finite() and net > gross:
        out.error(
            item_path(index, "net_weight"),
            f"Net weight ({net}) must not exceed gross weight ({gross})",
            FindingKind.CROSS_FIELD,
        )


def _validate_sequence(items: tuple[DeclarationItem, ...], out: _Collector) -> None:
    expected = len(items)
    seen: set[int] = set()
    for index, item in enumerate(items):
        number = item.item_number
        if number is None:
            out.error(item_path(index, "item_number"), "Item sequence number is missing", FindingKind.CROSS_FIELD)
        elif number < 1 or number > expected:
            out.error(
                item_path(index, "item_number"),
                f"Item sequence number {number} is outside 1..{expected}; numbering must be dense",
                FindingKind.CROSS_FIELD,
            )
        elif number in seen:
            out.error(
                item_path(index, "item_number"),
                f"Item sequence number {number} is duplicated",
                FindingKind.CROSS_FIELD,
            )
        else:
            seen.add(number)


def _validate_aggregates(record: DeclarationRecord, out: _Collector) -> None:
    pairs = [(f"totals.{total}", getattr(record.totals, total), part) for total, part in _AGGREGATES]
    pairs.append(("financial.invoice_total", record.financial.invoice_total, "invoice_value"))
    for path, declared, part in pairs:
        if declared is None or not declared.is_finite():
            continue
        summed = sum_present(getattr(item, part) for item in record.items)
        if summed is None:
            continue
        if abs(declared - summed) > AGGREGATE_TOLERANCE:
            out.warning(
                path,
                f"Declared total {declared} differs from the item sum {summed}",
                FindingKind.CROSS_FIELD,
            )


def validate(record: DeclarationRecord) -> list[ValidationFinding]:
    """Return every finding for *record* in deterministic document order."""

    out = _Collector()
    _validate_header(record, out)
    _validate_aggregates(record, out)
    if not record.items:
        out.warning("items", "Declaration has no goods items", FindingKind.MISSING_VALUE)
    for index, item in enumerate(record.items):
        _validate_item(index, item, out)
    _validate_sequence(record.items, out)
    return sort_findings(out.findings)


def errors_only(findings: Iterable[ValidationFinding]) -> list[ValidationFinding]:
    return [finding for finding in findings if finding.severity is Severity.ERROR]


def warnings_only(findings: Iterable[ValidationFinding]) -> list[ValidationFinding]:
    return [finding for finding in findings if finding.severity is Severity.WARNING]
