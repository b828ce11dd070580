from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api import protected, router
from app.schemas import ErrorResponse
from datastore.document_store import build_default_store
from logging_config import configure_logging
from services.dashboards import build_default_reports
from services.errors import AggregationError, FetchFailure, InvalidParameter
from services.fetcher import build_default_fetcher
from services.ledger import build_default_ledger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    reports = build_default_reports()
    try:
        yield
    finally:
        reports.fetcher.shutdown()
        build_default_reports.cache_clear()
        build_default_ledger.cache_clear()
        build_default_fetcher.cache_clear()
        build_default_store.cache_clear()


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    body = ErrorResponse(detail=detail, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def invalid_parameter_handler(_request: Request, exc: InvalidParameter) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "INVALID_PARAMETER")


async def fetch_failure_handler(_request: Request, exc: FetchFailure) -> JSONResponse:
    logger.error("Report inputs unavailable", extra={"entity_set": exc.entity_set})
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc), "FETCH_FAILURE")


async def aggregation_error_handler(_request: Request, exc: AggregationError) -> JSONResponse:
    logger.error("Report aggregation failed", extra={"reason": str(exc)})
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "AGGREGATION_ERROR")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Waste Metrics Service",
        description="Time-windowed waste management analytics over a mocked document store.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(InvalidParameter, invalid_parameter_handler)
    app.add_exception_handler(FetchFailure, fetch_failure_handler)
    app.add_exception_handler(AggregationError, aggregation_error_handler)
    app.include_router(router)
    app.include_router(protected)
    return app


app = create_app()
