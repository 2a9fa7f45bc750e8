"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity.
  • On shutdown: dispose the engine cleanly.

Routers:
  • /cost-tracking — admin spend reports over billing transactions
  • /health        — shallow liveness probe
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cost_tracking.core.config import settings
from cost_tracking.core.database import engine
from cost_tracking.core.errors import STORE_UNAVAILABLE, CostTrackingError
from cost_tracking.routers.cost_tracking import router as cost_tracking_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        "Per-agent LLM cost reporting — totals, per-agent breakdowns with "
        "ephemeral agent name resolution, and day/week/month trends."
    ),
    lifespan=lifespan,
)


# ── Error envelope ──────────────────────────────────────────
@app.exception_handler(CostTrackingError)
async def cost_tracking_error_handler(
    _request: Request,
    exc: CostTrackingError,
) -> JSONResponse:
    """Render report errors as {"error": message}."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(OSError)
async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Store failures outside a report (e.g. the API key lookup) get the same envelope."""
    logger.exception("Store unavailable while serving %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": STORE_UNAVAILABLE},
    )


# Mount routers
app.include_router(cost_tracking_router, prefix="/cost-tracking")


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}
