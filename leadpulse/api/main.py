import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from leadpulse.api.deps import get_context, get_rules, get_settings
from leadpulse.app_shell.config import validate_ops_rules
from leadpulse.core.errors import StoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = get_rules()
        validate_ops_rules(rules, settings.data_dir)
        logger.info("Rules loaded from %s", settings.rules_path)
    except Exception as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    ctx = get_context()
    if rules.reconciler.run_worker:
        ctx.worker.start()

    yield

    ctx.worker.stop()


app = FastAPI(
    title="leadpulse API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Storage failures outside ingestion (reads, summaries)."""
    if exc.retryable:
        logger.warning("Store unavailable on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Store temporarily unavailable"},
            headers={"Retry-After": "1"},
        )
    logger.error("Store error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Store error"},
    )


# --- Routers ---
from leadpulse.api.routes import admin_reconcile, analytics, ingest  # noqa: E402

app.include_router(ingest.router, prefix="/api", tags=["Ingest"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(admin_reconcile.router, prefix="/api/admin/reconcile", tags=["Admin"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "leadpulse"}
