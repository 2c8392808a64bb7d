"""Pydantic models for the external shapes: the flat UI form and the reports."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DeclarationItemForm(BaseModel):
    """One goods line as the UI form holds it: every value is optional text."""

    item_number: Optional[str] = None
    hs_code: Optional[str] = None
    description: Optional[str] = None
    origin_country: Optional[str] = None
    gross_weight: Optional[str] = None
    net_weight: Optional[str] = None
    quantity: Optional[str] = None
    unit_code: Optional[str] = None
    invoice_value: Optional[str] = None
    customs_value: Optional[str] = None
    statistical_value: Optional[str] = None
    procedure_code: Optional[str] = None
    preference_code: Optional[str] = None
    package_type: Optional[str] = None
    package_quantity: Optional[str] = None
    duty_base: Optional[str] = None
    duty_rate: Optional[str] = None
    duty_amount: Optional[str] = None
    vat_base: Optional[str] = None
    vat_rate: Optional[str] = None
    vat_amount: Optional[str] = None
    excise_rate: Optional[str] = None
    excise_amount: Optional[str] = None
    fee_amount: Optional[str] = None
    total_payment: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class DeclarationForm(BaseModel):
    """Flat, string-keyed declaration form used by the UI and stored drafts."""

    declaration_id: Optional[str] = None
    declaration_number: Optional[str] = None
    declaration_type: Optional[str] = None
    customs_regime_code: Optional[str] = None
    declaration_date: Optional[str] = None

    exporter_name: Optional[str] = None
    exporter_address: Optional[str] = None
    exporter_tin: Optional[str] = None
    exporter_country: Optional[str] = None
    consignee_name: Optional[str] = None
    consignee_address: Optional[str] = None
    consignee_tin: Optional[str] = None
    consignee_country: Optional[str] = None
    declarant_name: Optional[str] = None
    declarant_address: Optional[str] = None
    declarant_tin: Optional[str] = None
    declarant_country: Optional[str] = None

    currency: Optional[str] = None
    invoice_total: Optional[str] = None
    exchange_rate: Optional[str] = None
    incoterms_code: Optional[str] = None
    incoterms_place: Optional[str] = None
    transaction_nature_code: Optional[str] = None

    transport_mode: Optional[str] = None
    inland_transport_mode: Optional[str] = None
    dispatch_country: Optional[str] = None
    origin_country: Optional[str] = None
    destination_country: Optional[str] = None
    trading_country: Optional[str] = None
    customs_office: Optional[str] = None

    total_gross_weight: Optional[str] = None
    total_net_weight: Optional[str] = None
    total_packages: Optional[str] = None
    total_customs_value: Optional[str] = None
    total_duty: Optional[str] = None
    total_vat: Optional[str] = None
    total_excise: Optional[str] = None
    total_fee: Optional[str] = None
    total_payment: Optional[str] = None

    items: List[DeclarationItemForm] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class _ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FindingModel(_ReportModel):
    path: str
    message: str
    severity: str
    kind: str


class CorrectionModel(_ReportModel):
    path: str
    original_value: Optional[str] = None
    corrected_value: Optional[str] = None
    reason: str


class ValidationReport(_ReportModel):
    """Report handed to the UI: ``{isValid, errors, warnings, corrections}``."""

    is_valid: bool
    errors: List[FindingModel] = Field(default_factory=list)
    warnings: List[FindingModel] = Field(default_factory=list)
    corrections: List[CorrectionModel] = Field(default_factory=list)


class ItemPaymentModel(_ReportModel):
    item_number: Optional[int] = None
    hs_code: Optional[str] = None
    origin_country: Optional[str] = None
    preference_group: str
    customs_value: str
    base_duty_rate: str
    duty_rate: str
    vat_rate: str
    excise_rate: str
    duty_amount: str
    excise_amount: str
    vat_base: str
    vat_amount: str
    customs_fee: str
    total_payment: str
    rate_source: str


class DeclarationPaymentModel(_ReportModel):
    total_customs_value: str
    total_duty: str
    total_vat: str
    total_excise: str
    total_fee: str
    grand_total: str
    item_count: int


class ExchangeQuoteModel(_ReportModel):
    currency_code: str
    rate: str
    rate_date: Optional[str] = None
    source: str


class ProcessResultModel(_ReportModel):
    """Full engine result: report, calculated form and payment breakdown."""

    report: ValidationReport
    form: DeclarationForm
    item_payments: List[ItemPaymentModel] = Field(default_factory=list)
    totals: Optional[DeclarationPaymentModel] = None
    exchange_rate: Optional[ExchangeQuoteModel] = None


class DutyQuoteRequest(BaseModel):
    """Single-line duty quote request."""

    hs_code: str = Field(min_length=1)
    customs_value: str
    origin_country: Optional[str] = None
    currency: str = "UZS"
    date: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class DutyQuoteModel(_ReportModel):
    payment: ItemPaymentModel
    exchange_rate: ExchangeQuoteModel
    hs_description: str = ""
    rate_found: bool


class ExtractionDocumentModel(BaseModel):
    """One extracted document: flat form values plus confidence scores."""

    values: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    field_confidence: Dict[str, float] = Field(default_factory=dict)
    items: List[Dict[str, Any]] = Field(default_factory=list)
    source: str = ""

    model_config = ConfigDict(extra="forbid")


class MergeExtractionsRequest(BaseModel):
    documents: List[ExtractionDocumentModel] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class MergeResultModel(_ReportModel):
    form: DeclarationForm
    confidence: float
    level: str
    field_confidence: Dict[str, float] = Field(default_factory=dict)
    field_sources: Dict[str, str] = Field(default_factory=dict)
    warnings: List[FindingModel] = Field(default_factory=list)


class RateQuoteModel(_ReportModel):
    hs_code: str
    description: str = ""
    duty_rate: str
    vat_rate: str
    excise_rate: str
    source: str
    found: bool
    warning: Optional[str] = None


class CountryModel(_ReportModel):
    country_code: str
    name: str
    preference_group: str
