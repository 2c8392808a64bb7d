"""Error taxonomy for the declaration engine.

Data-quality problems are reported as :class:`~uzgtd.declaration.models.ValidationFinding`
objects tagged with a :class:`FindingKind`; only programming or configuration
faults and non-finite arithmetic surface as exceptions.
"""

from __future__ import annotations

from enum import Enum


class FindingKind(str, Enum):
    FIELD_FORMAT = "FieldFormatError"
    CROSS_FIELD = "CrossFieldInconsistency"
    MISSING_VALUE = "MissingValue"
    REFERENCE_DATA = "ReferenceDataUnavailable"
    CALCULATION_OVERFLOW = "CalculationOverflow"
    LOW_CONFIDENCE = "LowConfidence"


class DeclarationEngineError(Exception):
    """Base class for engine exceptions."""


class ReferenceDataUnavailable(DeclarationEngineError):
    """Raised by a gateway backend when a rate cannot be retrieved."""


class CalculationError(DeclarationEngineError):
    """Raised when an item payment cannot be computed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class CalculationOverflow(CalculationError):
    """Raised when an input or intermediate amount is not a finite number."""


class MissingCalculationInput(CalculationError):
    """Raised when a value required by the payment algorithm is absent."""


class ConfigurationError(DeclarationEngineError):
    """Raised when engine configuration cannot be loaded or is inconsistent."""
