from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from aqar.core.config import settings

import aqar.models  # noqa: F401  register all models at startup

from aqar.core.errors import (
    DomainError,
    domain_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from aqar.ledger.client import get_ledger_client
from aqar.modules.investments.router import router as investments_router
from aqar.modules.offerings.router import router as offerings_router
from aqar.modules.rent.router import router as rent_router
from aqar.modules.users.router import router as users_router
from aqar.core.sentry import init_sentry

# ── Sentry: must be initialised BEFORE FastAPI app is created ────────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting aqar API", env=settings.APP_ENV)

    if settings.CONFIGURE_ISSUER_ON_STARTUP:
        from aqar.modules.offerings.service import configure_issuer

        try:
            await configure_issuer(get_ledger_client())
        except DomainError as exc:
            logger.warning("issuer_configuration_failed", error=exc.message)

    yield
    logger.info("Shutting down aqar API")
    if get_ledger_client.cache_info().currsize:
        await get_ledger_client().close()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="aqar API",
    description="Fractional real-estate investment backed by tokens on the XRP Ledger.",
    version="0.1.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)

app.add_exception_handler(DomainError, domain_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)


# ── X-API-Version response header ────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Health check (root-level, not under /v1) ─────────────────────────────────


@app.get("/health")
async def health_check() -> dict:
    """Deep health check: probes the database, Redis and the ledger node."""
    checks: dict[str, dict] = {}

    # ── Database ──────────────────────────────────────────────────────────────
    try:
        from sqlalchemy import text
        from aqar.core.database import async_session_factory
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as exc:
        checks["database"] = {"status": "unhealthy", "error": str(exc)}

    # ── Redis ─────────────────────────────────────────────────────────────────
    try:
        from redis.asyncio import from_url as redis_from_url
        r = redis_from_url(settings.REDIS_URL, socket_connect_timeout=2)
        await r.ping()
        await r.aclose()
        checks["redis"] = {"status": "healthy"}
    except Exception as exc:
        checks["redis"] = {"status": "unhealthy", "error": str(exc)}

    # ── XRP Ledger ────────────────────────────────────────────────────────────
    try:
        ok = await get_ledger_client().ping()
        checks["ledger"] = {"status": "healthy" if ok else "unhealthy"}
    except Exception as exc:
        checks["ledger"] = {"status": "unhealthy", "error": str(exc)}

    overall = (
        "healthy"
        if all(c["status"] == "healthy" for c in checks.values())
        else "degraded"
    )
    return {"status": overall, "service": "aqar-api", "checks": checks}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(users_router)
api_v1.include_router(offerings_router)
api_v1.include_router(investments_router)
api_v1.include_router(rent_router)

app.include_router(api_v1)
