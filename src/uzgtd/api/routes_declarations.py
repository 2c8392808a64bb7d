from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from uzgtd.api.deps import get_engine
from uzgtd.declaration.adapters import (
    canonical_to_print_model,
    canonical_to_xml_model,
    form_to_canonical,
)
from uzgtd.declaration.engine import DeclarationEngine
from uzgtd.declaration.errors import CalculationError
from uzgtd.declaration.merge import ExtractionPayload, low_confidence_findings, merge_extractions
from uzgtd.declaration.money import to_decimal
from uzgtd.declaration.report import duty_quote_model, finding_model, process_result_model
from uzgtd.declaration.schemas import (
    DeclarationForm,
    DutyQuoteModel,
    DutyQuoteRequest,
    MergeExtractionsRequest,
    MergeResultModel,
    ProcessResultModel,
    ValidationReport,
)

router = APIRouter(prefix="/api/declarations", tags=["declarations"])


@router.post("/validate", response_model=ValidationReport)
def validate_declaration(
    form: DeclarationForm, engine: DeclarationEngine = Depends(get_engine)
) -> ValidationReport:
    return engine.validation_report(form_to_canonical(form))


@router.post("/process", response_model=ProcessResultModel)
def process_declaration(
    form: DeclarationForm, engine: DeclarationEngine = Depends(get_engine)
) -> ProcessResultModel:
    return process_result_model(engine.process_form(form))


@router.post("/calculate-duties", response_model=DutyQuoteModel)
def calculate_duties(
    request: DutyQuoteRequest, engine: DeclarationEngine = Depends(get_engine)
) -> DutyQuoteModel:
    value = to_decimal(request.customs_value)
    if value is None or not value.is_finite() or value < 0:
        raise HTTPException(
            status_code=422,
            detail={"error": "INVALID_CUSTOMS_VALUE", "message": "customs_value must be a non-negative number"},
        )
    try:
        quote = engine.quote_item(
            request.hs_code,
            value,
            origin_country=request.origin_country,
            currency=request.currency,
            on_date=request.date,
        )
    except CalculationError as exc:
        raise HTTPException(status_code=422, detail={"error": "CALCULATION_ERROR", "message": str(exc)}) from exc
    return duty_quote_model(quote)


@router.post("/print-model")
def print_model(form: DeclarationForm, engine: DeclarationEngine = Depends(get_engine)) -> Dict[str, Any]:
    """TD1/TD2 print model of the corrected and calculated declaration."""

    model = canonical_to_print_model(engine.process_form(form).record)
    payload = asdict(model)
    payload["additional_sheets"] = model.additional_sheets
    payload["total_sheets"] = model.total_sheets
    return payload


@router.post("/xml-model")
def xml_model(form: DeclarationForm, engine: DeclarationEngine = Depends(get_engine)) -> Dict[str, Any]:
    return canonical_to_xml_model(engine.process_form(form).record)


@router.post("/merge-extractions", response_model=MergeResultModel)
def merge_documents(
    request: MergeExtractionsRequest, engine: DeclarationEngine = Depends(get_engine)
) -> MergeResultModel:
    payloads = [
        ExtractionPayload(
            values=doc.values,
            confidence=doc.confidence,
            field_confidence=doc.field_confidence,
            items=doc.items,
            source=doc.source,
        )
        for doc in request.documents
    ]
    merged = merge_extractions(payloads)
    warnings = low_confidence_findings(merged, engine.config.low_confidence_threshold)
    return MergeResultModel(
        form=merged.form,
        confidence=merged.confidence,
        level=merged.level,
        field_confidence=merged.field_confidence,
        field_sources=merged.field_sources,
        warnings=[finding_model(f) for f in warnings],
    )
