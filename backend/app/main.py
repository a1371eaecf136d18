from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import asyncio

from app.core.config import settings
from app.core.database import init_db, close_db, AsyncSessionLocal
from app.core.exceptions import LibraryError, error_response
from app.core.logging_config import logger
from app.core.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    RequestSizeLimitMiddleware,
)
from app.core.rate_limiter import limiter, rate_limit_exceeded_handler
from app.core.redis_client import redis_client
from app.api.v1.router import api_router
from app.db.seed_data import seed_reference_data
from app.services.notification_websocket import run_pubsub_listener
import app.models  # noqa: F401  Import models so metadata knows about them

PLACEHOLDER_SECRETS = {"", "CHANGE_ME", "changeme", "secret"}


def validate_critical_config() -> None:
    """Refuse to start without secrets; warn about optional integrations"""
    missing = [
        name for name in ("SECRET_KEY", "JWT_SECRET_KEY")
        if getattr(settings, name) in PLACEHOLDER_SECRETS
    ]
    if not settings.DATABASE_URL:
        missing.append("DATABASE_URL")
    if missing:
        for name in missing:
            logger.critical(f"[Startup] {name} is missing or a placeholder")
        raise RuntimeError(f"Missing critical configuration: {', '.join(missing)}")

    optional = {
        "PayPal credentials not set, fee payments are disabled":
            settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET,
        "SMTP credentials not set, emails will be skipped":
            settings.SMTP_USER and settings.SMTP_PASSWORD,
    }
    for message, configured in optional.items():
        if not configured:
            logger.warning(f"[Startup] {message}")


async def ensure_database_ready():
    """Create tables and seed reference data (policies, first admin)"""
    await init_db()
    if settings.SEED_ON_STARTUP:
        async with AsyncSessionLocal() as db:
            await seed_reference_data(db)
        logger.info("[Startup] Reference data seeded")


async def _listen_for_notifications():
    # Reconnects after Redis restarts
    while True:
        try:
            await run_pubsub_listener()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Socket] Pub/sub listener stopped: {e}; retrying in 5s")
            await asyncio.sleep(5)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION} ({settings.ENVIRONMENT})")

    validate_critical_config()
    await ensure_database_ready()

    listener = None
    if settings.NOTIFICATION_PUBSUB_ENABLED:
        listener = asyncio.create_task(_listen_for_notifications())
        logger.info(f"[Socket] Bridging Redis channel '{settings.NOTIFICATION_CHANNEL}' to sockets")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    if listener:
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass
    await redis_client.disconnect()
    await close_db()


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API in the {success: false, error, code, details?} envelope"""

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        if exc.status_code >= 500:
            logger.error(f"[API] {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_response(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        body = {
            "success": False,
            "error": str(first.get("msg", "Invalid request")).removeprefix("Value error, "),
            "code": "VALIDATION_ERROR",
        }
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        if field:
            body["details"] = {"field": field}
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        body = {"success": False, "error": "Request failed", "code": "HTTP_ERROR"}
        if isinstance(exc.detail, str):
            body["error"] = exc.detail
        else:
            body["details"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"[API] Unhandled {type(exc).__name__} on {request.method} {request.url.path}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) if settings.DEBUG else "Internal server error",
                "code": "INTERNAL_ERROR",
            }
        )


app = FastAPI(
    title=settings.APP_NAME,
    description="Library management: catalog, circulation, ebooks, violation fees and notifications",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

# Last added runs first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
# Edition uploads are the largest bodies accepted
app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_EDITION_FILE_SIZE + 1024 * 1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
