from __future__ import annotations

from fastapi import HTTPException, Request

from uzgtd.declaration.engine import DeclarationEngine


def get_engine(request: Request) -> DeclarationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Declaration engine is not available")
    return engine
