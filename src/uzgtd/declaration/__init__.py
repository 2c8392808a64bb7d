"""GTD declaration validation, correction and payment computation."""

from uzgtd.declaration.adapters import (
    canonical_to_form,
    canonical_to_print_model,
    canonical_to_xml_model,
    form_to_canonical,
)
from uzgtd.declaration.calculator import DeclarationPayment, DutyCalculator, ItemPayment
from uzgtd.declaration.config import EngineConfig, get_engine_config, load_engine_config
from uzgtd.declaration.corrector import correct
from uzgtd.declaration.engine import DeclarationEngine, DeclarationResult
from uzgtd.declaration.models import (
    CorrectionEntry,
    DeclarationItem,
    DeclarationRecord,
    DeclarationType,
    ValidationFinding,
)
from uzgtd.declaration.preferences import PreferenceGroup, PreferenceTable
from uzgtd.declaration.reference import ReferenceStore, get_reference_store
from uzgtd.declaration.validator import validate

__all__ = [
    "CorrectionEntry",
    "DeclarationEngine",
    "DeclarationItem",
    "DeclarationPayment",
    "DeclarationRecord",
    "DeclarationResult",
    "DeclarationType",
    "DutyCalculator",
    "EngineConfig",
    "ItemPayment",
    "PreferenceGroup",
    "PreferenceTable",
    "ReferenceStore",
    "ValidationFinding",
    "canonical_to_form",
    "canonical_to_print_model",
    "canonical_to_xml_model",
    "correct",
    "form_to_canonical",
    "get_engine_config",
    "get_reference_store",
    "load_engine_config",
    "validate",
]
