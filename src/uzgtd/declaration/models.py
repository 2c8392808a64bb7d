"""Canonical declaration record and the findings/corrections attached to it.

The canonical record is the single internal shape every other component
consumes. Every field is optional so that incomplete drafts and AI extractions
can be represented without inventing values; numbers are ``Decimal`` so that
monetary arithmetic is exact until it is explicitly rounded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from uzgtd.declaration.errors import FindingKind


class DeclarationType(str, Enum):
    IMPORT = "IMPORT"
    EXPORT = "EXPORT"
    TRANSIT = "TRANSIT"

    @classmethod
    def parse(cls, raw: str | None) -> Optional["DeclarationType"]:
        if raw is None:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


_DECLARATION_TYPE_ALIASES: dict[str, DeclarationType] = {
    "IM": DeclarationType.IMPORT,
    "ИМ": DeclarationType.IMPORT,
    "40": DeclarationType.IMPORT,
    "EX": DeclarationType.EXPORT,
    "ЭК": DeclarationType.EXPORT,
    "10": DeclarationType.EXPORT,
    "TR": DeclarationType.TRANSIT,
    "ТР": DeclarationType.TRANSIT,
    "80": DeclarationType.TRANSIT,
}


def fold_declaration_type(raw: str | None) -> DeclarationType | None:
    """Resolve a declaration type written in any case or as a form abbreviation."""

    if raw is None:
        return None
    token = raw.strip().upper()
    return DeclarationType.parse(token) or _DECLARATION_TYPE_ALIASES.get(token)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Party:
    """Exporter, consignee or declarant."""

    name: str | None = None
    address: str | None = None
    tin: str | None = None
    country_code: str | None = None


@dataclass(frozen=True)
class FinancialTerms:
    currency_code: str | None = None
    invoice_total: Decimal | None = None
    exchange_rate: Decimal | None = None
    incoterms_code: str | None = None
    incoterms_place: str | None = None
    transaction_nature_code: str | None = None


@dataclass(frozen=True)
class Logistics:
    transport_mode_code: str | None = None  # mode at the border
    inland_transport_mode_code: str | None = None
    dispatch_country_code: str | None = None
    origin_country_code: str | None = None
    destination_country_code: str | None = None
    trading_country_code: str | None = None
    customs_office_code: str | None = None


@dataclass(frozen=True)
class DeclarationTotals:
    """Declaration-level aggregates; equal to the item sums after calculation."""

    total_gross_weight: Decimal | None = None
    total_net_weight: Decimal | None = None
    total_packages: Decimal | None = None
    total_customs_value: Decimal | None = None
    total_duty: Decimal | None = None
    total_vat: Decimal | None = None
    total_excise: Decimal | None = None
    total_fee: Decimal | None = None
    total_payment: Decimal | None = None


@dataclass(frozen=True)
class DeclarationItem:
    """One goods line of the declaration.

    The block after ``package_quantity`` is filled in by the calculator and is
    expressed in the base accounting currency.
    """

    item_number: int | None = None
    hs_code: str | None = None
    description: str | None = None
    origin_country_code: str | None = None
    gross_weight: Decimal | None = None
    net_weight: Decimal | None = None
    quantity: Decimal | None = None
    unit_code: str | None = None
    invoice_value: Decimal | None = None
    customs_value: Decimal | None = None
    statistical_value: Decimal | None = None
    procedure_code: str | None = None
    preference_code: str | None = None
    package_type: str | None = None
    package_quantity: Decimal | None = None

    duty_base: Decimal | None = None
    duty_rate: Decimal | None = None
    duty_amount: Decimal | None = None
    vat_base: Decimal | None = None
    vat_rate: Decimal | None = None
    vat_amount: Decimal | None = None
    excise_rate: Decimal | None = None
    excise_amount: Decimal | None = None
    fee_amount: Decimal | None = None
    total_payment: Decimal | None = None


@dataclass(frozen=True)
class DeclarationRecord:
    declaration_id: str | None = None
    declaration_number: str | None = None
    declaration_type: str | None = None
    customs_regime_code: str | None = None
    declaration_date: str | None = None  # yyyy-MM-dd
    exporter: Party = field(default_factory=Party)
    consignee: Party = field(default_factory=Party)
    declarant: Party = field(default_factory=Party)
    financial: FinancialTerms = field(default_factory=FinancialTerms)
    logistics: Logistics = field(default_factory=Logistics)
    totals: DeclarationTotals = field(default_factory=DeclarationTotals)
    items: tuple[DeclarationItem, ...] = ()

    @property
    def kind(self) -> DeclarationType | None:
        return fold_declaration_type(self.declaration_type)


@dataclass(frozen=True)
class ValidationFinding:
    """A single problem found on a field path such as ``consignee.tin``."""

    path: str
    message: str
    severity: Severity
    kind: FindingKind

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass(frozen=True)
class CorrectionEntry:
    """Audit record of one change made by the corrector."""

    path: str
    original_value: Any
    corrected_value: Any
    reason: str


def item_path(index: int, field_name: str | None = None) -> str:
    """Field path for the item at list position *index* (0-based)."""

    base = f"items[{index}]"
    return f"{base}.{field_name}" if field_name else base
