from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from charmclaim.config import settings
from charmclaim.database import engine
from charmclaim.errors import ClaimError, ConfigurationError, RateLimited
from charmclaim.logging_config import setup_logging
from charmclaim.middleware.logging import CORRELATION_HEADER, LoggingMiddleware, get_correlation_id
from charmclaim.routers import claims, dev, ownerships
from charmclaim.scheduler import shutdown_scheduler, start_scheduler
from charmclaim.services.crypto_utils import CodeHasher

# Database tables are managed by Alembic migrations
# Run: alembic upgrade head (from backend/)

REQUIRED_TABLES = {"physical_units", "claim_challenges", "ownerships", "abuse_events"}

setup_logging()
logger = structlog.get_logger()


def check_database_tables() -> None:
    """Fail fast when migrations have not been applied."""
    existing = set(inspect(engine).get_table_names())
    missing = REQUIRED_TABLES - existing
    if missing:
        raise RuntimeError(
            f"Database tables missing: {', '.join(sorted(missing))}. "
            "Run `alembic upgrade head` from backend/ before starting the server."
        )


def check_configuration() -> CodeHasher:
    """Build the code hasher and validate secrets. Missing secrets are fatal."""
    hasher = CodeHasher(settings.code_hash_secret)
    if not settings.session_secret:
        raise ConfigurationError("SESSION_SECRET is not configured")
    return hasher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and schema, then start/stop the scheduler."""
    app.state.code_hasher = check_configuration()
    check_database_tables()
    start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="CharmClaim",
    description="Redeem codes printed on collectible units for digital ownership",
    version="0.1.0",
    lifespan=lifespan,
)


def error_body(reason: str, detail) -> dict:
    return {"error": reason, "detail": detail}


@app.exception_handler(ClaimError)
async def claim_error_handler(request: Request, exc: ClaimError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after_seconds())

    if exc.status_code >= 500:
        logger.error(
            "claim_internal_error",
            path=request.url.path,
            error=repr(exc.__cause__ or exc),
            exc_info=exc,
        )
    else:
        logger.info("claim_rejected", path=request.url.path, reason=exc.reason)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.reason, exc.message),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations and messages only; submitted values may be claim codes
    problems = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")} for error in exc.errors()
    ]
    logger.info("claim_rejected", path=request.url.path, reason="invalid_request")
    return JSONResponse(status_code=400, content=error_body("invalid_request", problems))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, exc_info=exc)
    headers = {}
    correlation_id = get_correlation_id()
    if correlation_id:
        headers[CORRELATION_HEADER] = correlation_id
    return JSONResponse(
        status_code=500,
        content=error_body("internal_error", "Internal Server Error"),
        headers=headers,
    )


app.add_middleware(LoggingMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER, "Retry-After"],
)

# Routers
app.include_router(claims.router, prefix="/api/v1", tags=["claims"])
app.include_router(ownerships.router, prefix="/api/v1", tags=["ownerships"])
app.include_router(dev.router, prefix="/api/v1", tags=["dev"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
