"""Client for the Central Bank of Uzbekistan exchange-rate archive."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import requests  # type: ignore[import-untyped]

from uzgtd.declaration.errors import ReferenceDataUnavailable

logger = logging.getLogger(__name__)

CBU_BASE_URL = os.getenv("GTD_CBU_BASE_URL", "https://cbu.uz/uz/arkhiv-kursov-valyut/json")
CBU_TIMEOUT_SECONDS = float(os.getenv("GTD_CBU_TIMEOUT", "10"))


@dataclass(frozen=True)
class FetchedRate:
    currency_code: str
    rate: Decimal  # UZS per one unit of currency
    rate_date: date


def _parse_cbu_date(raw: Any) -> date | None:
    if not raw:
        return None
    try:
        return datetime.strptime(str(raw), "%d.%m.%Y").date()
    except ValueError:
        return None


class CBUClient:
    """Fetch official UZS rates, one currency per request."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._base_url = (base_url or CBU_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else CBU_TIMEOUT_SECONDS

    def rate_url(self, currency_code: str, on_date: date | None = None) -> str:
        code = currency_code.strip().upper()
        if on_date is None:
            return f"{self._base_url}/{code}/"
        return f"{self._base_url}/{code}/{on_date.isoformat()}/"

    def fetch_rate(self, currency_code: str, on_date: date | None = None) -> FetchedRate:
        """Return the rate published for *on_date* (or the latest one).

        Raises :class:`ReferenceDataUnavailable` on any transport or payload
        problem; callers decide how to fall back.
        """

        url = self.rate_url(currency_code, on_date)
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ReferenceDataUnavailable(f"CBU request failed for {currency_code}: {exc}") from exc

        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            raise ReferenceDataUnavailable(f"CBU returned no rate for {currency_code}")
        entry = payload[0]
        try:
            rate = Decimal(str(entry["Rate"]))
            nominal = Decimal(str(entry.get("Nominal") or "1"))
        except (KeyError, InvalidOperation) as exc:
            raise ReferenceDataUnavailable(f"Malformed CBU rate for {currency_code}") from exc
        if not rate.is_finite() or rate <= 0 or not nominal.is_finite() or nominal <= 0:
            raise ReferenceDataUnavailable(f"Non-positive CBU rate for {currency_code}")

        rate_date = _parse_cbu_date(entry.get("Date")) or on_date or date.today()
        logger.debug("CBU rate %s %s on %s", currency_code, rate, rate_date)
        return FetchedRate(
            currency_code=str(entry.get("Ccy") or currency_code).upper(),
            rate=rate / nominal,
            rate_date=rate_date,
        )
