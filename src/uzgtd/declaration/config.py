"""Engine configuration.

Everything that is policy rather than algorithm lives here so that a change in
customs policy (a new EAEU member, a different fee bracket) is a data change.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from uzgtd.declaration.errors import ConfigurationError
from uzgtd.declaration.models import DeclarationType
from uzgtd.declaration.money import to_decimal
from uzgtd.declaration.preferences import PreferenceTable, preference_table_from_payload

logger = logging.getLogger(__name__)

GTD_ENGINE_CONFIG = os.getenv("GTD_ENGINE_CONFIG")
GTD_DATA_ROOT = Path(
    os.getenv("GTD_DATA_ROOT", str(Path(__file__).resolve().parents[3] / "data"))
)
GTD_LIVE_EXCHANGE_RATES = os.getenv("GTD_LIVE_EXCHANGE_RATES", "0").lower() in {"1", "true", "yes"}

BASE_CURRENCY = "UZS"

DEFAULT_FALLBACK_EXCHANGE_RATES: dict[str, Decimal] = {
    "USD": Decimal("12500"),
    "EUR": Decimal("13500"),
    "RUB": Decimal("140"),
    "CNY": Decimal("1750"),
    "GBP": Decimal("15800"),
    "JPY": Decimal("85"),
    "KZT": Decimal("28"),
}


@dataclass(frozen=True)
class DefaultRates:
    """Rates (percent) applied when an HS code has no reference entry."""

    duty_rate: Decimal = Decimal("15")
    vat_rate: Decimal = Decimal("12")
    excise_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class FeePolicy:
    """Customs processing fee: a share of the customs value, clamped to a bracket."""

    rate: Decimal = Decimal("0.002")
    minimum: Decimal = Decimal("50000")
    maximum: Decimal = Decimal("1000000")


@dataclass(frozen=True)
class TypeDefaults:
    """Values the corrector fills in when a declaration of this type omits them."""

    customs_regime_code: str | None = None
    procedure_code: str | None = None
    transport_mode_code: str | None = None
    incoterms_place: str | None = None
    destination_country_code: str | None = None
    dispatch_country_code: str | None = None


DEFAULT_TYPE_DEFAULTS: dict[DeclarationType, TypeDefaults] = {
    DeclarationType.IMPORT: TypeDefaults(
        customs_regime_code="40",
        procedure_code="4000",
        transport_mode_code="30",
        incoterms_place="TASHKENT",
        destination_country_code="UZ",
    ),
    DeclarationType.EXPORT: TypeDefaults(
        customs_regime_code="10",
        procedure_code="1000",
        transport_mode_code="30",
        incoterms_place="TASHKENT",
        dispatch_country_code="UZ",
    ),
    DeclarationType.TRANSIT: TypeDefaults(
        customs_regime_code="80",
        procedure_code="8000",
        transport_mode_code="30",
    ),
}


@dataclass(frozen=True)
class EngineConfig:
    preferences: PreferenceTable = field(default_factory=PreferenceTable)
    cis_duty_factor: Decimal = Decimal("0.75")
    default_rates: DefaultRates = field(default_factory=DefaultRates)
    fee: FeePolicy = field(default_factory=FeePolicy)
    base_currency: str = BASE_CURRENCY
    fallback_exchange_rates: Mapping[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_FALLBACK_EXCHANGE_RATES)
    )
    fallback_default_rate: Decimal = Decimal("12500")
    type_defaults: Mapping[DeclarationType, TypeDefaults] = field(
        default_factory=lambda: dict(DEFAULT_TYPE_DEFAULTS)
    )
    low_confidence_threshold: float = 0.7

    def defaults_for(self, declaration_type: DeclarationType | None) -> TypeDefaults:
        if declaration_type is None:
            return TypeDefaults()
        return self.type_defaults.get(declaration_type, TypeDefaults())

    def fallback_rate_for(self, currency_code: str) -> Decimal:
        return self.fallback_exchange_rates.get(currency_code.upper(), self.fallback_default_rate)


def _decimal_setting(payload: Mapping[str, Any], key: str, default: Decimal) -> Decimal:
    if key not in payload:
        return default
    value = to_decimal(payload[key])
    if value is None or not value.is_finite():
        raise ConfigurationError(f"Setting {key!r} must be a finite number")
    return value


def config_from_payload(payload: Mapping[str, Any]) -> EngineConfig:
    """Build an :class:`EngineConfig` from a JSON-style mapping of overrides."""

    config = EngineConfig()
    updates: dict[str, Any] = {}

    if "preferences" in payload:
        updates["preferences"] = preference_table_from_payload(payload["preferences"] or {})
    if "cis_duty_factor" in payload:
        updates["cis_duty_factor"] = _decimal_setting(payload, "cis_duty_factor", config.cis_duty_factor)

    rates = payload.get("default_rates") or {}
    if rates:
        base = config.default_rates
        updates["default_rates"] = DefaultRates(
            duty_rate=_decimal_setting(rates, "duty_rate", base.duty_rate),
            vat_rate=_decimal_setting(rates, "vat_rate", base.vat_rate),
            excise_rate=_decimal_setting(rates, "excise_rate", base.excise_rate),
        )

    fee = payload.get("fee") or {}
    if fee:
        base_fee = config.fee
        policy = FeePolicy(
            rate=_decimal_setting(fee, "rate", base_fee.rate),
            minimum=_decimal_setting(fee, "minimum", base_fee.minimum),
            maximum=_decimal_setting(fee, "maximum", base_fee.maximum),
        )
        if policy.minimum > policy.maximum:
            raise ConfigurationError("Fee minimum exceeds fee maximum")
        updates["fee"] = policy

    if "base_currency" in payload:
        updates["base_currency"] = str(payload["base_currency"]).strip().upper()

    fallback = payload.get("fallback_exchange_rates")
    if fallback:
        if not isinstance(fallback, dict):
            raise ConfigurationError("fallback_exchange_rates must be an object")
        updates["fallback_exchange_rates"] = {
            str(code).strip().upper(): _decimal_setting(fallback, code, Decimal("0"))
            for code in fallback
        }
    if "fallback_default_rate" in payload:
        updates["fallback_default_rate"] = _decimal_setting(
            payload, "fallback_default_rate", config.fallback_default_rate
        )

    type_defaults = payload.get("type_defaults")
    if type_defaults:
        merged = dict(config.type_defaults)
        for raw_type, values in type_defaults.items():
            declaration_type = DeclarationType.parse(str(raw_type).upper())
            if declaration_type is None or not isinstance(values, dict):
                raise ConfigurationError(f"Invalid type_defaults entry {raw_type!r}")
            merged[declaration_type] = replace(
                merged.get(declaration_type, TypeDefaults()),
                **{k: (None if v is None else str(v)) for k, v in values.items() if k in TypeDefaults.__dataclass_fields__},
            )
        updates["type_defaults"] = merged

    if "low_confidence_threshold" in payload:
        updates["low_confidence_threshold"] = float(payload["low_confidence_threshold"])

    return replace(config, **updates)


def load_engine_config(path: Path) -> EngineConfig:
    """Load engine configuration overrides from a JSON file."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigurationError(f"Cannot read engine config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Engine config {path} must be a JSON object")
    config = config_from_payload(payload)
    logger.info("Loaded engine configuration from %s", path)
    return config


@lru_cache(maxsize=1)
def get_engine_config() -> EngineConfig:
    """Return the process-wide configuration (``GTD_ENGINE_CONFIG`` or built-ins)."""

    if GTD_ENGINE_CONFIG:
        return load_engine_config(Path(GTD_ENGINE_CONFIG))
    return EngineConfig()
