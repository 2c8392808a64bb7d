from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from uzgtd.api.deps import get_engine
from uzgtd.declaration.codes import country_name
from uzgtd.declaration.engine import DeclarationEngine
from uzgtd.declaration.report import exchange_model, rate_quote_model
from uzgtd.declaration.schemas import CountryModel, ExchangeQuoteModel, RateQuoteModel

router = APIRouter(prefix="/api", tags=["references"])


@router.get("/references/hs-codes/{hs_code}", response_model=RateQuoteModel)
def get_hs_code(hs_code: str, engine: DeclarationEngine = Depends(get_engine)) -> RateQuoteModel:
    return rate_quote_model(engine.gateway.get_rate(hs_code))


@router.get("/references/countries/{country_code}", response_model=CountryModel)
def get_country(country_code: str, engine: DeclarationEngine = Depends(get_engine)) -> CountryModel:
    code = country_code.strip().upper()
    return CountryModel(
        country_code=code,
        name=country_name(code),
        preference_group=engine.gateway.get_preference_group(code).value,
    )


@router.get("/exchange-rates/{currency}", response_model=ExchangeQuoteModel)
def get_exchange_rate(
    currency: str,
    date: Optional[str] = Query(default=None, description="yyyy-MM-dd; latest rate when omitted"),
    engine: DeclarationEngine = Depends(get_engine),
) -> ExchangeQuoteModel:
    return exchange_model(engine.gateway.get_exchange_rate(currency.strip().upper(), date))
