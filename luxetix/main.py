from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from luxetix.config import Settings, get_settings
from luxetix.api.deps import DB, SettingsDep
from luxetix.api.v1.router import api_router
from luxetix.database import is_sqlite, init_db
from luxetix.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status

logger = logging.getLogger(__name__)


OPENAPI_TAGS = [
    {"name": "Checkout", "description": "Pending ticket orders with inventory reservation"},
    {"name": "Payments", "description": "Xendit payment intents: Virtual Account, e-wallet, QRIS"},
    {"name": "Webhooks", "description": "Xendit payment callbacks"},
    {"name": "Agent Registration", "description": "Paid agent registration"},
    {"name": "Agent", "description": "Agent balance, withdrawals and settlements"},
    {"name": "Admin", "description": "Withdrawal processing, agent promotion, ticket validation"},
]

API_DESCRIPTION = """
## Luxetix Payment Core API

Payment lifecycle and settlement bookkeeping for the Luxetix concert marketplace.

### Flow

1. **Checkout** creates a pending order and reserves tickets
2. **Payments** creates a Xendit payment intent (expires after 5 minutes)
3. **Webhooks** reconcile the order and issue ticket codes
4. **Agents** accrue earnings and request withdrawals

### Authentication

User, agent and admin endpoints take a Supabase access token:
`Authorization: Bearer <token>`

Xendit callbacks are verified with the `x-callback-token` header.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Business rule violated |
| 401 | Unauthorized - Invalid/expired token or callback token |
| 403 | Forbidden - Insufficient role |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Resource is not in the required state |
| 422 | Unprocessable Entity - Validation failed |
| 502 | Bad Gateway - Payment gateway error, try again |
| 503 | Service Unavailable - Payment gateway not configured |
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if is_sqlite:
        await init_db()
    if not settings.xendit_configured:
        logger.warning("XENDIT_SECRET_KEY is not set; payment intents will answer 503")
    if settings.SCHEDULER_ENABLED:
        start_scheduler(settings)

    yield

    shutdown_scheduler()
    logger.info("Shutting down...")


def _unhandled_error_handler(settings: Settings):
    async def handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")

        error_detail = {
            "error": "Internal server error",
            "type": type(exc).__name__,
            "path": str(request.url.path),
            "method": request.method,
        }
        if settings.DEBUG:
            error_detail["error"] = str(exc)
            error_detail["traceback"] = traceback.format_exc()

        response = JSONResponse(status_code=500, content=error_detail)

        # Error responses bypass CORSMiddleware
        origin = request.headers.get("origin", "")
        if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    return handler


async def health_check(db: DB, settings: SettingsDep):
    """Database connectivity, gateway configuration and scheduled jobs."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "payment_gateway": "configured" if settings.xendit_configured else "not configured",
            "scheduler": get_job_status(),
        },
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {e}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)
    return health_status


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()

    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=API_DESCRIPTION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=OPENAPI_TAGS,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(api_router)
    application.add_exception_handler(Exception, _unhandled_error_handler(settings))
    application.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])

    @application.get("/", tags=["Root"])
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
        }

    return application


app = create_app()
