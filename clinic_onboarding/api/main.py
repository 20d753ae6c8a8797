"""
ASGI entry point for the clinic onboarding service.

Run with ``uvicorn clinic_onboarding.api.main:app``. Startup opens the
PostgreSQL pool and applies the SQL files under migrations/ before the
registration routes accept traffic.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg import OperationalError
from psycopg_pool import ConnectionPool, PoolTimeout

from clinic_onboarding.adapters.repository.postgres import run_migrations
from clinic_onboarding.api.errors import install_exception_handlers
from clinic_onboarding.api.v1 import router as v1_router
from clinic_onboarding.config.settings import get_settings

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "v1",
        "description": "Clinic registration: account, email code, clinic profile, "
        "subscription, payment and completion",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Own the connection pool for the lifetime of the process."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )
    run_migrations(pool)
    app.state.pool = pool
    logger.info(
        "Clinic onboarding ready (registration TTL %d days, pool %d-%d)",
        settings.registration_ttl_days,
        settings.pool_min_size,
        settings.pool_max_size,
    )

    yield

    pool.close()
    logger.info("Clinic onboarding stopped")


app = FastAPI(
    title="clinic-onboarding",
    description="Multi-step clinic registration that ends in one atomic "
    "user + clinic + clinic_admin creation",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

install_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> JSONResponse:
    """Report whether the registration store is reachable (200) or not (503)."""
    try:
        with request.app.state.pool.connection(timeout=2) as conn:
            conn.execute("SELECT 1")
    except (OperationalError, PoolTimeout) as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unreachable"},
        )
    return JSONResponse(content={"status": "healthy", "database": "ok"})
