def test_known_hs_code(system_client):
    body = system_client.get("/api/references/hs-codes/8703220000").json()
    assert body["found"] is True
    assert body["dutyRate"] == "25"
    assert body["vatRate"] == "12"


def test_unknown_hs_code_returns_defaults(system_client):
    body = system_client.get("/api/references/hs-codes/0000000001").json()
    assert body["found"] is False
    assert body["source"] == "default"
    assert body["dutyRate"] == "15"
    assert body["warning"]


def test_country_preference_group(system_client):
    body = system_client.get("/api/references/countries/kz").json()
    assert body == {"countryCode": "KZ", "name": "КАЗАХСТАН", "preferenceGroup": "EAEU"}
    assert system_client.get("/api/references/countries/TJ").json()["preferenceGroup"] == "CIS"


def test_exchange_rate_lookup(system_client):
    exact = system_client.get("/api/exchange-rates/usd", params={"date": "2025-01-15"}).json()
    assert exact["currencyCode"] == "USD"
    assert exact["source"] == "exact"
    assert exact["rateDate"] == "2025-01-15"

    fallback = system_client.get("/api/exchange-rates/XAU").json()
    assert fallback["source"] == "fallback"
    assert fallback["rateDate"] is None
