"""Application factory for the order service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings

from .db import get_engine
from .errors import (
    INVALID,
    NOT_FOUND,
    PartialAggregationFailure,
    PartitionScanFailure,
    StoreError,
    WriteFailure,
)
from .middlewares import RequestIdMiddleware
from .obs import configure_logging
from .repos.orders_repo import OrderRepository
from .routes_metrics import router as metrics_router
from .routes_orders import router as orders_router
from .store.sql import SqlPartitionStore, create_schema
from .utils.responses import err, ok

logger = logging.getLogger("orderhub")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        engine = get_engine(settings.store_url, slow_query_ms=settings.db_slow_query_ms)
        if settings.store_auto_create:
            await create_schema(engine)
        store = SqlPartitionStore(engine, scatter_enabled=settings.scatter_enabled)
        app.state.orders_repo = OrderRepository(store, settings=settings)
        logger.info(
            "order store ready strategy=%s policy=%s",
            settings.scan_strategy.value,
            settings.fanout_policy.value,
        )
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(title="OrderHub", lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "%s", exc.detail, extra={"status": exc.status_code, "route": request.url.path}
        )
        code = NOT_FOUND if exc.status_code == 404 else f"HTTP_{exc.status_code}"
        return JSONResponse(err(code, str(exc.detail)), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = {"errors": jsonable_encoder(exc.errors())}
        return JSONResponse(err(INVALID, "invalid request", details), status_code=422)

    @app.exception_handler(PartialAggregationFailure)
    async def partial_failure_handler(request: Request, exc: PartialAggregationFailure):
        logger.warning(
            "partition reads failed: %s",
            ", ".join(sorted(exc.failures)),
            extra={"status": 503, "route": request.url.path},
        )
        return JSONResponse(
            err("PARTIAL_FAILURE", str(exc), {"partitions": sorted(exc.failures)}),
            status_code=503,
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if isinstance(exc, PartitionScanFailure):
            code, status_code = "PARTITION_SCAN_FAILED", 503
        elif isinstance(exc, WriteFailure):
            code, status_code = "WRITE_FAILED", 502
        else:
            code, status_code = "STORE_ERROR", 502
        logger.error(
            "store error: %s",
            exc,
            exc_info=exc,
            extra={"status": status_code, "route": request.url.path},
        )
        return JSONResponse(err(code, str(exc)), status_code=status_code)

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"status": 500, "route": request.url.path})
        return JSONResponse(err("INTERNAL", "Internal Server Error"), status_code=500)

    @app.get("/health")
    async def health() -> dict:
        return ok({"status": "ok"})

    app.include_router(orders_router)
    app.include_router(metrics_router)
    return app


__all__ = ["create_app"]
