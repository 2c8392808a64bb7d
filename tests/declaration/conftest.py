"""Shared fixtures for declaration engine tests."""

from __future__ import annotations

import pytest

from uzgtd.declaration.config import EngineConfig
from uzgtd.declaration.engine import DeclarationEngine
from uzgtd.declaration.reference import ReferenceStore


@pytest.fixture()
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture()
def store(engine_config) -> ReferenceStore:
    store = ReferenceStore(config=engine_config)
    store.add_rate(
        "8703220000",
        duty_rate="25",
        vat_rate="12",
        excise_rate="0",
        description="Motor cars with spark-ignition engine (1000-1500 cc)",
    )
    store.add_rate("2203000100", duty_rate="10", vat_rate="12", excise_rate="20", description="Beer")
    store.add_exchange_rate("USD", "2025-01-15", "12850")
    store.add_exchange_rate("USD", "2025-01-10", "12800")
    return store


@pytest.fixture()
def engine(store, engine_config) -> DeclarationEngine:
    return DeclarationEngine(gateway=store, config=engine_config)
