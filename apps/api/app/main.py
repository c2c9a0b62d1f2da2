"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import Settings, settings
from app.core.errors import AppError
from app.db.session import build_engine, build_session_factory
from app.services.identity_service import build_identity_provider
from app.services.sms_gateway import build_sms_gateway
from app.services.storage_client import build_object_storage

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Phones are PII
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.core.rate_limit import limiter

logger = logging.getLogger(__name__)


# ============================================================================
# Error rendering
# ============================================================================

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("Request failed upstream", extra={"error": exc.code, "path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "detail": errors},
    )


# ============================================================================
# App factory
# ============================================================================

def _close_quietly(client) -> None:
    close = getattr(client, "close", None)
    if close is not None:
        close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    _close_quietly(app.state.sms_gateway)
    _close_quietly(app.state.storage)
    _close_quietly(app.state.identity_provider)
    app.state.engine.dispose()


def create_app(config: Settings = settings) -> FastAPI:
    """
    Build the API with explicitly constructed clients.

    Engine, session factory, SMS gateway, object storage and identity
    provider live on ``app.state``; dependencies in ``app.core.deps`` hand
    them out and the lifespan closes them.
    """
    app = FastAPI(
        title="Turns API",
        description="Turn review lifecycle for managers and field cleaners",
        version=config.VERSION,
        docs_url="/docs" if config.ENV == "dev" else None,
        redoc_url="/redoc" if config.ENV == "dev" else None,
        lifespan=lifespan,
    )

    engine = build_engine(config.DATABASE_URL)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.sms_gateway = build_sms_gateway(config)
    app.state.storage = build_object_storage(config)
    app.state.identity_provider = build_identity_provider(config)

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # CORS middleware - must be added before routers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,  # Required for the field-session cookie
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ========================================================================
    # Routers
    # ========================================================================

    from app.routers import (
        auth_router,
        otp_router,
        photos_router,
        properties_router,
        sms_router,
        storage_router,
        turns_router,
    )

    app.include_router(auth_router)
    app.include_router(otp_router)
    app.include_router(turns_router)
    app.include_router(photos_router)
    app.include_router(properties_router)

    # Signed links for the local storage backend
    app.include_router(storage_router)

    # Twilio inbound webhook (public, signature-checked when enabled)
    app.include_router(sms_router)

    # ========================================================================
    # Health Check
    # ========================================================================

    @app.get("/health")
    def health(request: Request):
        """
        Health check endpoint.

        Verifies database connectivity and returns environment info.
        """
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "env": config.ENV, "version": config.VERSION}

    return app


app = create_app()
