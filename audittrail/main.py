import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import configure_mappers
from datetime import datetime, timezone

from audittrail.audit.middleware import AuditContextMiddleware
from audittrail.core.config import settings
from audittrail.core.database import engine
from audittrail.core.logging import setup_logging
from audittrail.api.v1 import audit

logger = logging.getLogger(__name__)


def verify_orm_mappings() -> None:
    """
    Verify all SQLAlchemy ORM mappings are valid at startup.

    This catches relationship configuration errors early before
    any requests are processed, preventing cryptic 500 errors.
    """
    # Import all models to ensure they are registered
    from audittrail.models import User, AuditLog  # noqa: F401

    # This will raise InvalidRequestError if any relationships are misconfigured
    configure_mappers()
    logger.info("ORM mapper configuration verified successfully")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup:
    - Configure logging
    - Verify ORM mappings to fail fast if models are misconfigured
    """
    setup_logging()

    try:
        verify_orm_mappings()
    except Exception as e:
        logger.critical(f"ORM mapper configuration failed: {e}")
        raise RuntimeError(f"Application cannot start: ORM mapping error - {e}") from e

    if not settings.AUDIT_LOGGING_ENABLED:
        logger.warning("Audit logging is DISABLED (AUDIT_LOGGING_ENABLED=false)")

    yield

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Audit context must wrap every route so intercepted operations see the actor
app.add_middleware(AuditContextMiddleware)

# CORS middleware - added last so it is outermost and headers land on all responses including errors
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler to ensure JSON responses with proper CORS headers.

    Note: HTTPException is handled by FastAPI's default handler and will
    not reach this handler, preserving intended status codes.
    """
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
        },
    )

# API v1 router
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(audit.router, prefix="/admin/audit-logs", tags=["audit"])

app.include_router(api_v1_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Verifies database connectivity. Returns HTTP 200 with a structured
    status either way; "status" is "unhealthy" when the database is down.
    """
    health = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": {"status": "unknown", "message": None},
            "audit_logging": {
                "status": "enabled" if settings.AUDIT_LOGGING_ENABLED else "disabled",
            },
        }
    }

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        health["components"]["database"]["status"] = "healthy"
        health["components"]["database"]["message"] = "Connected"
    except Exception as e:
        health["components"]["database"]["status"] = "unhealthy"
        health["components"]["database"]["message"] = str(e)
        health["status"] = "unhealthy"

    return health


@app.get("/")
async def root():
    return {
        "message": "Audit Trail API",
        "version": "1.0.0",
        "docs": "/docs",
    }
