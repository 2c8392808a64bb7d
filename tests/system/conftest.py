"""Shared fixtures for system-level API tests."""

import importlib
from typing import Any, Callable, Dict, Iterator

import pytest
from fastapi.testclient import TestClient


@pytest.fixture()
def system_app(monkeypatch):
    monkeypatch.setenv("GTD_MAX_WORKERS", "2")
    monkeypatch.setenv("GTD_ENGINE_VERSION", "0.1.0-system")

    import uzgtd.api.app as app_mod

    app_mod = importlib.reload(app_mod)
    return app_mod.app


@pytest.fixture()
def system_client(system_app) -> Iterator[TestClient]:
    with TestClient(system_app) as client:
        yield client


def _item(number: int, **overrides: str) -> Dict[str, Any]:
    item = {
        "item_number": str(number),
        "hs_code": "8703220000",
        "description": f"Passenger car {number}",
        "origin_country": "CN",
        "gross_weight": "1250.000",
        "net_weight": "1180.000",
        "quantity": "1",
        "unit_code": "796",
        "invoice_value": "19245.00",
        "customs_value": "19245.00",
        "procedure_code": "4000",
        "package_quantity": "1",
    }
    item.update(overrides)
    return item


@pytest.fixture()
def declaration_payload() -> Callable[..., Dict[str, Any]]:
    """Factory for a complete import declaration form in UZS."""

    def _factory(item_count: int = 1, **overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "declaration_id": "sys-0001",
            "declaration_type": "IMPORT",
            "customs_regime_code": "40",
            "declaration_date": "2025-01-15",
            "exporter_name": "Shanghai Auto Export Co",
            "exporter_country": "CN",
            "consignee_name": "Tashkent Motors LLC",
            "consignee_tin": "123456789",
            "consignee_country": "UZ",
            "currency": "UZS",
            "invoice_total": format(19245 * item_count, ".2f"),
            "incoterms_code": "CIP",
            "incoterms_place": "TASHKENT",
            "transport_mode": "30",
            "dispatch_country": "CN",
            "origin_country": "CN",
            "destination_country": "UZ",
            "items": [_item(n) for n in range(1, item_count + 1)],
        }
        payload.update(overrides)
        return payload

    return _factory
