"""Reference Data Gateway: HS rates, exchange rates and preference groups.

The engine reads reference data only through :class:`ReferenceDataGateway`.
:class:`ReferenceStore` is the in-process implementation backed by JSON seeds
and, optionally, a live exchange-rate source. Missing data never raises: an
unknown HS code yields the default rates and an unknown exchange rate walks
the fallback chain exact date -> latest known -> conservative table.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Protocol

from uzgtd.declaration.cbu_client import CBUClient
from uzgtd.declaration.config import (
    GTD_DATA_ROOT,
    GTD_LIVE_EXCHANGE_RATES,
    EngineConfig,
    get_engine_config,
)
from uzgtd.declaration.errors import ReferenceDataUnavailable
from uzgtd.declaration.money import to_decimal
from uzgtd.declaration.preferences import PreferenceGroup

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def _normalize_hs(code: str) -> str:
    return _NON_DIGITS.sub("", str(code))


def coerce_date(value: date | str | None) -> date | None:
    """Accept a ``date`` or an ISO ``yyyy-MM-dd`` string; anything else is ``None``."""

    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class RateQuote:
    """Duty, VAT and excise rates (percent) for one HS code."""

    hs_code: str
    duty_rate: Decimal
    vat_rate: Decimal
    excise_rate: Decimal
    source: str  # reference | default
    description: str = ""
    warning: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.source == "reference"


@dataclass(frozen=True)
class ExchangeQuote:
    """Units of base currency per one unit of *currency_code*."""

    currency_code: str
    rate: Decimal
    rate_date: date | None
    source: str  # base | exact | latest | fallback
    warning: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


class ReferenceDataGateway(Protocol):
    def get_rate(self, hs_code: str) -> RateQuote: ...

    def get_exchange_rate(self, currency_code: str, on_date: date | str | None = None) -> ExchangeQuote: ...

    def get_preference_group(self, country_code: str | None) -> PreferenceGroup: ...


class ExchangeRateSource(Protocol):
    def fetch_rate(self, currency_code: str, on_date: date | None = None): ...


@dataclass(frozen=True)
class RateEntry:
    hs_code: str
    description: str
    duty_rate: Decimal
    vat_rate: Decimal
    excise_rate: Decimal


def _rate_value(raw: object, default: Decimal) -> Decimal:
    value = to_decimal(raw)
    if value is None or not value.is_finite() or value < 0:
        return default
    return value


class ReferenceStore:
    """In-memory reference data with optional live exchange-rate lookups."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        exchange_source: ExchangeRateSource | None = None,
    ) -> None:
        self._config = config or get_engine_config()
        self._exchange_source = exchange_source
        self._rates: Dict[str, RateEntry] = {}
        self._exchange: Dict[str, Dict[date, Decimal]] = {}

    # -- loaders -----------------------------------------------------------

    def add_rate(
        self,
        hs_code: str,
        *,
        duty_rate: Decimal | str | float,
        vat_rate: Decimal | str | float | None = None,
        excise_rate: Decimal | str | float | None = None,
        description: str = "",
    ) -> None:
        defaults = self._config.default_rates
        digits = _normalize_hs(hs_code)
        self._rates[digits] = RateEntry(
            hs_code=digits,
            description=description,
            duty_rate=_rate_value(duty_rate, defaults.duty_rate),
            vat_rate=_rate_value(vat_rate, defaults.vat_rate),
            excise_rate=_rate_value(excise_rate, defaults.excise_rate),
        )

    def add_exchange_rate(self, currency_code: str, on_date: date | str, rate: Decimal | str | float) -> None:
        parsed_date = coerce_date(on_date)
        value = to_decimal(rate)
        if parsed_date is None or value is None or not value.is_finite() or value <= 0:
            logger.warning("Ignoring invalid exchange rate %s %s=%s", currency_code, on_date, rate)
            return
        self._exchange.setdefault(currency_code.strip().upper(), {})[parsed_date] = value

    def load_rates_seed(self, path: Path) -> int:
        """Load HS rates from a JSON seed file (``{"rates": [...]}``)."""
        data = json.loads(path.read_text(encoding="utf-8"))
        defaults = self._config.default_rates
        count = 0
        for rec in data.get("rates", []):
            if not isinstance(rec, dict):
                continue
            digits = _normalize_hs(rec.get("hs_code", ""))
            if not digits:
                continue
            self._rates[digits] = RateEntry(
                hs_code=digits,
                description=str(rec.get("description", "")),
                duty_rate=_rate_value(rec.get("duty_rate"), defaults.duty_rate),
                vat_rate=_rate_value(rec.get("vat_rate"), defaults.vat_rate),
                excise_rate=_rate_value(rec.get("excise_rate"), defaults.excise_rate),
            )
            count += 1
        logger.info("Loaded %d HS rate entries from seed %s", count, path.name)
        return count

    def load_exchange_seed(self, path: Path) -> int:
        """Load exchange rates from a JSON seed file (``{"rates": [...]}``)."""
        data = json.loads(path.read_text(encoding="utf-8"))
        count = 0
        for rec in data.get("rates", []):
            if not isinstance(rec, dict) or not rec.get("currency_code"):
                continue
            before = sum(len(v) for v in self._exchange.values())
            self.add_exchange_rate(str(rec["currency_code"]), str(rec.get("date", "")), rec.get("rate"))
            count += sum(len(v) for v in self._exchange.values()) - before
        logger.info("Loaded %d exchange rates from seed %s", count, path.name)
        return count

    @property
    def rate_count(self) -> int:
        return len(self._rates)

    # -- gateway -----------------------------------------------------------

    def get_rate(self, hs_code: str) -> RateQuote:
        digits = _normalize_hs(hs_code or "")
        entry = self._rates.get(digits)
        if entry is not None:
            return RateQuote(
                hs_code=entry.hs_code,
                duty_rate=entry.duty_rate,
                vat_rate=entry.vat_rate,
                excise_rate=entry.excise_rate,
                source="reference",
                description=entry.description,
            )
        defaults = self._config.default_rates
        return RateQuote(
            hs_code=digits,
            duty_rate=defaults.duty_rate,
            vat_rate=defaults.vat_rate,
            excise_rate=defaults.excise_rate,
            source="default",
            warning=f"HS code {hs_code} not found in reference rates; default rates applied",
        )

    def get_exchange_rate(self, currency_code: str, on_date: date | str | None = None) -> ExchangeQuote:
        code = (currency_code or "").strip().upper()
        if code == self._config.base_currency:
            return ExchangeQuote(code, Decimal("1"), coerce_date(on_date), "base")

        requested = coerce_date(on_date)
        known = self._exchange.get(code, {})
        if requested is not None and requested in known:
            return ExchangeQuote(code, known[requested], requested, "exact")

        if self._exchange_source is not None:
            try:
                fetched = self._exchange_source.fetch_rate(code, requested)
            except ReferenceDataUnavailable as exc:
                logger.warning("Live exchange rate unavailable for %s: %s", code, exc)
            else:
                self.add_exchange_rate(code, fetched.rate_date, fetched.rate)
                source = "exact" if requested is None or fetched.rate_date == requested else "latest"
                return ExchangeQuote(code, fetched.rate, fetched.rate_date, source)

        if known:
            latest = max(known)
            return ExchangeQuote(code, known[latest], latest, "latest")

        rate = self._config.fallback_rate_for(code)
        message = f"No exchange rate known for {code}; using fallback rate {rate}"
        logger.warning("No exchange rate known for %s; using fallback rate %s", code, rate)
        return ExchangeQuote(code, rate, None, "fallback", warning=message)

    def get_preference_group(self, country_code: str | None) -> PreferenceGroup:
        return self._config.preferences.group_for(country_code)


def _rates_seed_path() -> Path:
    return GTD_DATA_ROOT / "reference" / "hs_rates.json"


def _exchange_seed_path() -> Path:
    return GTD_DATA_ROOT / "reference" / "exchange_rates.json"


@lru_cache(maxsize=1)
def get_reference_store() -> ReferenceStore:
    """Return a cached :class:`ReferenceStore` loaded from the bundled seeds."""
    store = ReferenceStore(exchange_source=CBUClient() if GTD_LIVE_EXCHANGE_RATES else None)
    seeds = (
        (_rates_seed_path(), store.load_rates_seed),
        (_exchange_seed_path(), store.load_exchange_seed),
    )
    for path, loader in seeds:
        if not path.exists():
            logger.warning("Reference seed %s is missing", path)
            continue
        try:
            loader(path)
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to load reference seed %s", path.name, exc_info=True)
    logger.info("Reference store ready: %d HS rates", store.rate_count)
    return store
