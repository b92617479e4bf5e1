"""
Chatdesk - FastAPI application entry point.

A multi-user AI chat service with:
- Conversations persisted per user (SQLAlchemy async)
- Image and document attachments (PDF, Word, Excel, text)
- Provider fallback across Qwen, DeepSeek and OpenAI
- Per-user token quotas managed by administrators
- Security hardening (CORS, headers, rate limiting)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatdesk.api.v1.routes import api_router
from chatdesk.core.config import settings
from chatdesk.core.security import hash_password
from chatdesk.services.database import database
from chatdesk.services.providers import provider_registry
from chatdesk.services.rate_limiter import rate_limit_middleware
from chatdesk.services.redis_cache import redis_cache

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("chatdesk")


async def bootstrap_admin() -> None:
    """Ensure the configured administrator account exists (ADMIN_EMAIL + ADMIN_PASSWORD)."""
    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        return
    user = await database.ensure_admin_user(settings.ADMIN_EMAIL, hash_password(settings.ADMIN_PASSWORD))
    logger.info("Admin account ready: %s", user.email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Connect the database and create tables
    - Optionally connect Redis (login lockout, rate limiting)
    - Bootstrap the admin account

    Shutdown:
    - Close Redis and database connections
    """
    logger.info("Starting up %s...", settings.PROJECT_NAME)

    if not await database.connect():
        raise RuntimeError(f"Could not connect to database at {settings.sanitize_url(settings.DATABASE_URL)}")

    if settings.REDIS_URL:
        if not await redis_cache.connect():
            logger.warning("Redis not available (continuing without login lockout)")
    if settings.ENABLE_RATE_LIMITING and not redis_cache.is_available:
        logger.error("Rate limiting enabled but Redis is unavailable - API requests will be refused")

    await bootstrap_admin()

    configured = provider_registry.configured_names()
    if configured:
        logger.info("LLM providers configured: %s", ", ".join(configured))
    else:
        logger.warning("No LLM provider API keys set; only an admin-saved configuration can answer")

    if not settings.email_enabled:
        logger.info("SMTP not configured - new accounts are activated without email verification")

    yield

    logger.info("Shutting down...")
    await redis_cache.close()
    await database.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Multi-user AI chat with attachments, provider fallback and token quotas",
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# =============================================================================
# Security Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """
    Add security headers to all responses.

    API responses may carry conversation content, so they are never cached.
    """
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    if request.url.path.startswith(settings.API_V1_STR):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"

    return response


# Rate limiting middleware (applies to API routes only)
app.middleware("http")(rate_limit_middleware)


@app.middleware("http")
async def catch_exceptions_middleware(request: Request, call_next):
    """
    Global exception handler to prevent internal error details leaking.

    Logs full exception for debugging, returns generic error to client.
    """
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception during request to %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# =============================================================================
# Routes
# =============================================================================

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {
        "status": "healthy",
        "database_connected": database.is_available,
        "redis_connected": redis_cache.is_available,
        "providers": provider_registry.configured_names(),
        "email_enabled": settings.email_enabled,
    }
