"""CLA Bot API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from cla_api import __version__
from cla_api.errors import ClaBotError
from cla_api.github.factory import GitHubClientFactory
from cla_api.middleware.correlation import CorrelationIDMiddleware
from cla_api.routes import admin, signatures, webhooks
from cla_api.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting CLA Bot API in {settings.resolved_authorization_mode.value} mode...")
    try:
        settings.validate_production_settings()
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down CLA Bot API...")


app = FastAPI(
    title="CLA Bot API",
    description="Contributor License Agreement enforcement for GitHub pull requests",
    version=__version__,
    lifespan=lifespan,
)

# The in-memory GitHub client lives on the factory, one per app
app.state.github_factory = GitHubClientFactory(settings)

app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(webhooks.router)
app.include_router(admin.router)
app.include_router(signatures.router)


@app.exception_handler(ClaBotError)
async def cla_bot_error_handler(request: Request, exc: ClaBotError):
    """Render domain errors as ``{"error": message}``."""
    status_code = exc.status_code or 500
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "cla-bot-api",
        "version": __version__,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    import redis
    from sqlalchemy import text

    from cla_api.db.session import SessionLocal

    checks = {"database": False, "redis": False}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    try:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        redis_client.ping()
        checks["redis"] = True
    except Exception as e:
        logger.error(f"Redis check failed: {e}")

    all_ready = all(checks.values())
    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "CLA Bot API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
