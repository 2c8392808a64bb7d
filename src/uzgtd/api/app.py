from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from uzgtd.api.routes_declarations import router as declarations_router
from uzgtd.api.routes_references import router as references_router
from uzgtd.declaration.engine import DeclarationEngine
from uzgtd.declaration.errors import ConfigurationError
from uzgtd.observability import (
    bind_run_id,
    log_event,
    new_run_id,
    reset_run_id,
)
from uzgtd.version import __version__

# -----------------------------------------------------------------------------
# App setup
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)

ENGINE_VERSION = os.getenv("GTD_ENGINE_VERSION", __version__)
MAX_WORKERS = int(os.getenv("GTD_MAX_WORKERS", "1"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        app.state.engine = DeclarationEngine(max_workers=MAX_WORKERS)
    except ConfigurationError:
        logger.exception("Declaration engine bootstrap failed")
        app.state.engine = None
    yield
    app.state.engine = None


app = FastAPI(title="uzgtd API", version=ENGINE_VERSION, lifespan=lifespan)
app.include_router(declarations_router)
app.include_router(references_router)


@app.middleware("http")
async def attach_run_id(request: Request, call_next):
    run_id = request.headers.get("X-Run-ID") or new_run_id()
    token = bind_run_id(run_id)
    log_event("request.start", path=str(request.url.path))
    try:
        response = await call_next(request)
        response.headers["X-Run-ID"] = run_id
        return response
    finally:
        log_event("request.end", path=str(request.url.path))
        reset_run_id(token)


def _normalize_validation_errors(raw_errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    fields: List[Dict[str, str]] = []
    for err in raw_errors:
        loc = err.get("loc", [])
        loc_parts = [str(part) for part in loc if part != "body"]
        path = ".".join(["request", *loc_parts]) if loc_parts else "request"
        message = err.get("msg", "Invalid request")
        if message.lower().startswith("value error, "):
            message = message.split(", ", 1)[1]
        fields.append({"path": path, "message": message})
    return {"error": "VALIDATION_ERROR", "fields": fields}


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=_normalize_validation_errors(exc.errors()))


@app.exception_handler(ConfigurationError)
async def handle_configuration_error(request: Request, exc: ConfigurationError):
    logger.error("Configuration error while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "CONFIGURATION_ERROR", "message": str(exc)})


@app.get("/health")
def health(request: Request) -> Dict[str, Any]:
    engine = getattr(request.app.state, "engine", None)
    return {
        "ok": engine is not None,
        "status": "ok" if engine is not None else "degraded",
        "engine_version": ENGINE_VERSION,
    }
