"""Merge several AI extractions of the same shipment into one form.

Each extraction carries flat form values plus a confidence score per field.
For every header field the value with the highest confidence wins; ties keep
the value from the earlier document. Goods lines are unioned in document
order, dropping repeats of the same description and invoice value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Sequence

from uzgtd.declaration.adapters import HEADER_BINDINGS, ITEM_BINDINGS
from uzgtd.declaration.errors import FindingKind
from uzgtd.declaration.models import Severity, ValidationFinding, item_path
from uzgtd.declaration.money import to_decimal
from uzgtd.declaration.schemas import DeclarationForm, DeclarationItemForm

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.9
MEDIUM_CONFIDENCE = 0.7

# Fields an extractor reads less reliably than the document as a whole.
FIELD_CONFIDENCE_FACTORS: dict[str, float] = {
    "exporter_address": 0.9,
    "consignee_address": 0.9,
    "declarant_address": 0.9,
    "exporter_tin": 0.95,
    "consignee_tin": 0.95,
    "declarant_tin": 0.95,
    "incoterms_code": 0.95,
    "transport_mode": 0.9,
}

_HEADER_KEYS = tuple(key for key, _, _, _ in HEADER_BINDINGS)
_HEADER_PATHS = {
    key: name if section is None else f"{section}.{name}" for key, section, name, _ in HEADER_BINDINGS
}
_ITEM_KEYS = frozenset(key for key, _, _ in ITEM_BINDINGS)
_ITEM_FIELDS = {key: name for key, name, _ in ITEM_BINDINGS}


def confidence_level(score: float) -> str:
    if score >= HIGH_CONFIDENCE:
        return "high"
    if score >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass(frozen=True)
class ExtractionPayload:
    """Output of one document extraction, keyed by form field names."""

    values: Mapping[str, Any]
    confidence: float = 0.0
    field_confidence: Mapping[str, float] = field(default_factory=dict)
    items: Sequence[Mapping[str, Any]] = ()
    source: str = ""

    def confidence_for(self, key: str) -> float:
        if key in self.field_confidence:
            return float(self.field_confidence[key])
        return self.confidence * FIELD_CONFIDENCE_FACTORS.get(key, 1.0)


@dataclass(frozen=True)
class MergedExtraction:
    form: DeclarationForm
    field_confidence: dict[str, float]
    field_sources: dict[str, str]
    item_confidence: tuple[float, ...]
    confidence: float

    @property
    def level(self) -> str:
        return confidence_level(self.confidence)


def _item_key(values: Mapping[str, Any]) -> tuple[str, Decimal | str | None]:
    description = (_as_text(values.get("description")) or "").strip().casefold()
    raw_price = _as_text(values.get("invoice_value"))
    price = to_decimal(raw_price)
    return description, price if price is not None and price.is_finite() else raw_price


def _item_form(values: Mapping[str, Any], source: str) -> DeclarationItemForm:
    unknown = set(values) - _ITEM_KEYS
    if unknown:
        logger.debug("Dropping unknown item keys %s from %s", sorted(unknown), source or "extraction")
    return DeclarationItemForm(**{key: _as_text(values.get(key)) for key in _ITEM_KEYS if key in values})


def merge_extractions(payloads: Sequence[ExtractionPayload]) -> MergedExtraction:
    """Combine *payloads* deterministically into a single form."""

    if not payloads:
        raise ValueError("No extractions to merge")

    chosen: dict[str, str] = {}
    confidence: dict[str, float] = {}
    sources: dict[str, str] = {}
    for index, payload in enumerate(payloads):
        for key in _HEADER_KEYS:
            value = _as_text(payload.values.get(key))
            if value is None:
                continue
            score = payload.confidence_for(key)
            if key not in chosen or score > confidence[key]:
                chosen[key] = value
                confidence[key] = score
                sources[key] = payload.source or f"document[{index}]"

    items: list[DeclarationItemForm] = []
    item_confidence: list[float] = []
    seen: set[tuple[str, Decimal | str | None]] = set()
    for payload in payloads:
        for values in payload.items:
            key = _item_key(values)
            if key in seen:
                continue
            seen.add(key)
            items.append(_item_form(values, payload.source))
            item_confidence.append(payload.confidence)

    overall = sum(p.confidence for p in payloads) / len(payloads)
    return MergedExtraction(
        form=DeclarationForm(**chosen, items=items),
        field_confidence=confidence,
        field_sources=sources,
        item_confidence=tuple(item_confidence),
        confidence=overall,
    )


def low_confidence_findings(
    merged: MergedExtraction, threshold: float = MEDIUM_CONFIDENCE
) -> list[ValidationFinding]:
    """Warnings for every merged value whose confidence is below *threshold*."""

    findings: list[ValidationFinding] = []
    for key in _HEADER_KEYS:
        score = merged.field_confidence.get(key)
        if score is not None and score < threshold:
            findings.append(
                ValidationFinding(
                    _HEADER_PATHS[key],
                    f"Extracted with low confidence ({score:.0%}); please verify",
                    Severity.WARNING,
                    FindingKind.LOW_CONFIDENCE,
                )
            )
    for index, (line, score) in enumerate(zip(merged.form.items, merged.item_confidence)):
        if score >= threshold:
            continue
        for key, name in _ITEM_FIELDS.items():
            if getattr(line, key) is not None:
                findings.append(
                    ValidationFinding(
                        item_path(index, name),
                        f"Extracted with low confidence ({score:.0%}); please verify",
                        Severity.WARNING,
                        FindingKind.LOW_CONFIDENCE,
                    )
                )
    return findings
