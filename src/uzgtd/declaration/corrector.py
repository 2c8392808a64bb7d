"""Deterministic, conservative auto-correction of declaration records.

Only formatting and non-financial defaults are touched: code casing, default
regime/procedure/transport values, packaging quantity clamping and decimal
rounding. Tax identifiers and monetary values (other than rounding) are never
changed. Applying :func:`correct` twice yields no further corrections.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from uzgtd.declaration.config import EngineConfig, TypeDefaults, get_engine_config
from uzgtd.declaration.models import (
    CorrectionEntry,
    DeclarationItem,
    DeclarationRecord,
    DeclarationTotals,
    FinancialTerms,
    Logistics,
    Party,
    fold_declaration_type,
    item_path,
)
from uzgtd.declaration.money import round2, round3

logger = logging.getLogger(__name__)

COUNTRY_CODE_NORMALIZED = "COUNTRY_CODE_NORMALIZED"
CURRENCY_CODE_NORMALIZED = "CURRENCY_CODE_NORMALIZED"
INCOTERMS_CODE_NORMALIZED = "INCOTERMS_CODE_NORMALIZED"
DECLARATION_TYPE_NORMALIZED = "DECLARATION_TYPE_NORMALIZED"
HS_CODE_NORMALIZED = "HS_CODE_NORMALIZED"
DEFAULT_APPLIED = "DEFAULT_APPLIED"
PACKAGING_QUANTITY_CLAMPED = "PACKAGING_QUANTITY_CLAMPED"
SEQUENCE_ASSIGNED = "SEQUENCE_ASSIGNED"
ROUNDED = "ROUNDED"

_HS_SEPARATORS = re.compile(r"[\s.\-/]")

_LOGISTICS_COUNTRIES = (
    "dispatch_country_code",
    "origin_country_code",
    "destination_country_code",
    "trading_country_code",
)
_HEADER_WEIGHTS = ("total_gross_weight", "total_net_weight")
_HEADER_MONEY = (
    "total_customs_value",
    "total_duty",
    "total_vat",
    "total_excise",
    "total_fee",
    "total_payment",
)
_ITEM_WEIGHTS = ("gross_weight", "net_weight")
_ITEM_MONEY = (
    "invoice_value",
    "customs_value",
    "statistical_value",
    "duty_base",
    "duty_amount",
    "vat_base",
    "vat_amount",
    "excise_amount",
    "fee_amount",
    "total_payment",
)


@dataclass
class _Log:
    entries: list[CorrectionEntry]

    def record(self, path: str, original: Any, corrected: Any, reason: str) -> None:
        logger.debug("Corrected %s: %r -> %r (%s)", path, original, corrected, reason)
        self.entries.append(CorrectionEntry(path, original, corrected, reason))


def _upper_code(value: str | None, path: str, reason: str, log: _Log) -> str | None:
    if value is None:
        return None
    folded = value.strip().upper()
    if folded != value:
        log.record(path, value, folded, reason)
    return folded


def _default(value: str | None, default: str | None, path: str, log: _Log) -> str | None:
    if default is None or (value is not None and value.strip()):
        return value
    log.record(path, value, default, DEFAULT_APPLIED)
    return default


def _rounded(value: Decimal | None, path: str, rounder, log: _Log) -> Decimal | None:
    if value is None or not value.is_finite():
        return value
    result = rounder(value)
    if result != value:
        log.record(path, value, result, ROUNDED)
    return result


def _correct_party(party: Party, prefix: str, log: _Log) -> Party:
    return replace(
        party,
        country_code=_upper_code(
            party.country_code, f"{prefix}.country_code", COUNTRY_CODE_NORMALIZED, log
        ),
    )


def _correct_financial(financial: FinancialTerms, defaults: TypeDefaults, log: _Log) -> FinancialTerms:
    currency = _upper_code(
        financial.currency_code, "financial.currency_code", CURRENCY_CODE_NORMALIZED, log
    )
    incoterms = _upper_code(
        financial.incoterms_code, "financial.incoterms_code", INCOTERMS_CODE_NORMALIZED, log
    )
    place = financial.incoterms_place
    if incoterms:
        place = _default(place, defaults.incoterms_place, "financial.incoterms_place", log)
    return replace(
        financial,
        currency_code=currency,
        incoterms_code=incoterms,
        incoterms_place=place,
        invoice_total=_rounded(financial.invoice_total, "financial.invoice_total", round2, log),
    )


def _correct_logistics(logistics: Logistics, defaults: TypeDefaults, log: _Log) -> Logistics:
    updates: dict[str, Any] = {}
    for name in _LOGISTICS_COUNTRIES:
        updates[name] = _upper_code(
            getattr(logistics, name), f"logistics.{name}", COUNTRY_CODE_NORMALIZED, log
        )
    updates["destination_country_code"] = _default(
        updates["destination_country_code"],
        defaults.destination_country_code,
        "logistics.destination_country_code",
        log,
    )
    updates["dispatch_country_code"] = _default(
        updates["dispatch_country_code"],
        defaults.dispatch_country_code,
        "logistics.dispatch_country_code",
        log,
    )
    updates["transport_mode_code"] = _default(
        logistics.transport_mode_code,
        defaults.transport_mode_code,
        "logistics.transport_mode_code",
        log,
    )
    return replace(logistics, **updates)


def _correct_totals(totals: DeclarationTotals, log: _Log) -> DeclarationTotals:
    updates: dict[str, Any] = {}
    for name in _HEADER_WEIGHTS:
        updates[name] = _rounded(getattr(totals, name), f"totals.{name}", round3, log)
    for name in _HEADER_MONEY:
        updates[name] = _rounded(getattr(totals, name), f"totals.{name}", round2, log)
    return replace(totals, **updates)


def _declares_goods(item: DeclarationItem) -> bool:
    return bool((item.description or "").strip() or (item.hs_code or "").strip())


def _correct_hs_code(value: str | None, path: str, log: _Log) -> str | None:
    if value is None:
        return None
    stripped = _HS_SEPARATORS.sub("", value)
    if stripped != value and len(stripped) == 10 and stripped.isdigit():
        log.record(path, value, stripped, HS_CODE_NORMALIZED)
        return stripped
    return value


def _correct_item(index: int, item: DeclarationItem, defaults: TypeDefaults, log: _Log) -> DeclarationItem:
    updates: dict[str, Any] = {
        "hs_code": _correct_hs_code(item.hs_code, item_path(index, "hs_code"), log),
        "origin_country_code": _upper_code(
            item.origin_country_code,
            item_path(index, "origin_country_code"),
            COUNTRY_CODE_NORMALIZED,
            log,
        ),
        "procedure_code": _default(
            item.procedure_code, defaults.procedure_code, item_path(index, "procedure_code"), log
        ),
    }

    quantity = item.package_quantity
    if _declares_goods(item) and (quantity is None or (quantity.is_finite() and quantity == 0)):
        updates["package_quantity"] = Decimal("1")
        log.record(item_path(index, "package_quantity"), quantity, Decimal("1"), PACKAGING_QUANTITY_CLAMPED)

    for name in _ITEM_WEIGHTS:
        updates[name] = _rounded(getattr(item, name), item_path(index, name), round3, log)
    for name in _ITEM_MONEY:
        updates[name] = _rounded(getattr(item, name), item_path(index, name), round2, log)
    return replace(item, **updates)


def correct(
    record: DeclarationRecord, config: EngineConfig | None = None
) -> tuple[DeclarationRecord, list[CorrectionEntry]]:
    """Return a corrected copy of *record* and the audit log of every change."""

    config = config or get_engine_config()
    log = _Log([])

    declaration_type = record.declaration_type
    folded_type = fold_declaration_type(declaration_type)
    if folded_type is not None and folded_type.value != declaration_type:
        log.record("declaration_type", declaration_type, folded_type.value, DECLARATION_TYPE_NORMALIZED)
        declaration_type = folded_type.value
    defaults = config.defaults_for(folded_type)

    regime = _default(record.customs_regime_code, defaults.customs_regime_code, "customs_regime_code", log)
    exporter = _correct_party(record.exporter, "exporter", log)
    consignee = _correct_party(record.consignee, "consignee", log)
    declarant = _correct_party(record.declarant, "declarant", log)
    financial = _correct_financial(record.financial, defaults, log)
    logistics = _correct_logistics(record.logistics, defaults, log)
    totals = _correct_totals(record.totals, log)

    items = record.items
    if items and all(item.item_number is None for item in items):
        numbered = []
        for index, item in enumerate(items):
            log.record(item_path(index, "item_number"), None, index + 1, SEQUENCE_ASSIGNED)
            numbered.append(replace(item, item_number=index + 1))
        items = tuple(numbered)
    items = tuple(_correct_item(index, item, defaults, log) for index, item in enumerate(items))

    corrected = replace(
        record,
        declaration_type=declaration_type,
        customs_regime_code=regime,
        exporter=exporter,
        consignee=consignee,
        declarant=declarant,
        financial=financial,
        logistics=logistics,
        totals=totals,
        items=items,
    )
    return corrected, log.entries
