import json
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
import requests

from uzgtd.declaration.cbu_client import CBUClient, FetchedRate
from uzgtd.declaration.errors import ReferenceDataUnavailable
from uzgtd.declaration.preferences import PreferenceGroup
from uzgtd.declaration.reference import ReferenceStore

BUNDLED_REFERENCE = Path(__file__).resolve().parents[2] / "data" / "reference"


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


class _StaticSource:
    def __init__(self, fetched=None, error=None):
        self.fetched = fetched
        self.error = error
        self.calls = 0

    def fetch_rate(self, currency_code, on_date=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.fetched


def test_rate_lookup_ignores_separators(store):
    quote = store.get_rate("8703.22.0000")
    assert quote.found
    assert quote.duty_rate == Decimal("25")
    assert quote.description.startswith("Motor cars")


def test_unknown_hs_code_uses_defaults(store):
    quote = store.get_rate("1234567890")
    assert quote.source == "default"
    assert (quote.duty_rate, quote.vat_rate, quote.excise_rate) == (Decimal("15"), Decimal("12"), Decimal("0"))
    assert "1234567890" in quote.warning


def test_missing_rate_components_fall_back_to_defaults(store):
    store.add_rate("0101210000", duty_rate="5", vat_rate=None, excise_rate="-3")
    quote = store.get_rate("0101210000")
    assert quote.duty_rate == Decimal("5")
    assert quote.vat_rate == Decimal("12")
    assert quote.excise_rate == Decimal("0")


def test_base_currency_needs_no_lookup(store):
    quote = store.get_exchange_rate("uzs", "2025-01-15")
    assert (quote.rate, quote.source) == (Decimal("1"), "base")


def test_exchange_rate_on_exact_date(store):
    quote = store.get_exchange_rate("USD", date(2025, 1, 10))
    assert (quote.rate, quote.rate_date, quote.source) == (Decimal("12800"), date(2025, 1, 10), "exact")


def test_exchange_rate_falls_back_to_latest(store):
    quote = store.get_exchange_rate("USD", "2025-03-01")
    assert (quote.rate, quote.rate_date, quote.source) == (Decimal("12850"), date(2025, 1, 15), "latest")
    assert not quote.is_fallback


def test_exchange_rate_falls_back_to_table(store, caplog):
    eur = store.get_exchange_rate("EUR", "2025-01-15")
    assert (eur.rate, eur.source) == (Decimal("13500"), "fallback")
    assert eur.is_fallback
    assert eur.warning
    assert "using fallback rate" in caplog.text

    unknown = store.get_exchange_rate("XAU")
    assert unknown.rate == Decimal("12500")


def test_invalid_exchange_rates_are_ignored(store):
    store.add_exchange_rate("GBP", "2025-01-15", "-1")
    store.add_exchange_rate("GBP", "not a date", "15800")
    assert store.get_exchange_rate("GBP", "2025-01-15").source == "fallback"


def test_live_source_is_consulted_and_cached(engine_config):
    source = _StaticSource(FetchedRate("EUR", Decimal("13400.5"), date(2025, 1, 15)))
    store = ReferenceStore(config=engine_config, exchange_source=source)

    first = store.get_exchange_rate("EUR", "2025-01-15")
    second = store.get_exchange_rate("EUR", "2025-01-15")
    assert (first.rate, first.source) == (Decimal("13400.5"), "exact")
    assert second == first
    assert source.calls == 1


def test_live_source_failure_degrades_to_stored_rates(engine_config):
    source = _StaticSource(error=ReferenceDataUnavailable("timeout"))
    live = ReferenceStore(config=engine_config, exchange_source=source)
    live.add_exchange_rate("USD", "2025-01-10", "12800")
    quote = live.get_exchange_rate("USD", "2025-01-20")
    assert (quote.rate, quote.source) == (Decimal("12800"), "latest")


def test_preference_groups(store):
    assert store.get_preference_group("kz") is PreferenceGroup.EAEU
    assert store.get_preference_group("TJ") is PreferenceGroup.CIS
    assert store.get_preference_group("CN") is PreferenceGroup.MFN
    assert store.get_preference_group(None) is PreferenceGroup.MFN


def test_seed_files(tmp_path, engine_config):
    rates = tmp_path / "hs_rates.json"
    rates.write_text(
        json.dumps(
            {
                "rates": [
                    {"hs_code": "8517 12 0000", "description": "Phones", "duty_rate": 0, "vat_rate": 12},
                    {"hs_code": "", "duty_rate": 5},
                    "garbage",
                ]
            }
        ),
        encoding="utf-8",
    )
    exchange = tmp_path / "exchange_rates.json"
    exchange.write_text(
        json.dumps({"rates": [{"currency_code": "usd", "date": "2025-01-15", "rate": "12850.00"}, {"rate": 1}]}),
        encoding="utf-8",
    )

    store = ReferenceStore(config=engine_config)
    assert store.load_rates_seed(rates) == 1
    assert store.load_exchange_seed(exchange) == 1
    assert store.get_rate("8517120000").duty_rate == Decimal("0")
    assert store.get_exchange_rate("USD", "2025-01-15").source == "exact"


def test_bundled_seeds_load(engine_config):
    store = ReferenceStore(config=engine_config)
    assert store.load_rates_seed(BUNDLED_REFERENCE / "hs_rates.json") > 30
    assert store.load_exchange_seed(BUNDLED_REFERENCE / "exchange_rates.json") > 5
    assert store.get_rate("8703220000").duty_rate == Decimal("25")
    assert store.get_exchange_rate("USD", "2025-01-15").rate == Decimal("12850")


def test_cbu_client_parses_rate():
    session = _FakeSession(
        _FakeResponse(
            [{"Ccy": "JPY", "Nominal": "10", "Rate": "855.20", "Date": "15.01.2025", "CcyNm_EN": "Japan Yen"}]
        )
    )
    client = CBUClient(session=session, base_url="https://cbu.example/json/", timeout=3)
    fetched = client.fetch_rate("jpy", date(2025, 1, 15))

    assert fetched == FetchedRate("JPY", Decimal("85.52"), date(2025, 1, 15))
    assert session.calls == [("https://cbu.example/json/JPY/2025-01-15/", 3)]


def test_cbu_latest_url():
    client = CBUClient(session=_FakeSession(), base_url="https://cbu.example/json")
    assert client.rate_url("usd") == "https://cbu.example/json/USD/"


@pytest.mark.parametrize(
    "session",
    [
        _FakeSession(error=requests.ConnectionError("down")),
        _FakeSession(_FakeResponse([], status_code=503)),
        _FakeSession(_FakeResponse(ValueError("not json"))),
        _FakeSession(_FakeResponse([])),
        _FakeSession(_FakeResponse([{"Ccy": "USD", "Rate": "abc"}])),
        _FakeSession(_FakeResponse([{"Ccy": "USD", "Rate": "0"}])),
    ],
)
def test_cbu_failures_raise_reference_error(session):
    with pytest.raises(ReferenceDataUnavailable):
        CBUClient(session=session).fetch_rate("USD")


@pytest.mark.parametrize("live", [False, True])
def test_shared_store_wraps_cbu_when_enabled(monkeypatch, live):
    from uzgtd.declaration import reference

    monkeypatch.setattr(reference, "GTD_LIVE_EXCHANGE_RATES", live)
    reference.get_reference_store.cache_clear()
    try:
        store = reference.get_reference_store()
        assert isinstance(store._exchange_source, CBUClient) is live
        assert store.rate_count > 0
    finally:
        reference.get_reference_store.cache_clear()
