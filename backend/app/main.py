import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1 import api_router
from app.core.config import Settings, settings as default_settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import RequestLoggingMiddleware, setup_logging
from app.core.rate_limiter import limiter
from app.core.security import PasswordHasher, TokenIssuer
from app.core.shutdown import GracefulShutdownManager, RequestTrackingMiddleware, lifespan_manager
from app.db.session import Database

logger = logging.getLogger("webide")

SERVICE_NAME = "webide-auth-backend"
SERVICE_VERSION = "1.0.0"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.
    Helps prevent XSS, clickjacking, and other common attacks.
    """
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # Token-bearing responses must never be cached by intermediaries
        if request.url.path.startswith(request.app.state.settings.API_PREFIX + "/auth"):
            response.headers["Cache-Control"] = "no-store"

        return response


class HealthResponse(BaseModel):
    """Health check response format."""
    status: str
    service: str
    version: str
    environment: str
    checks: dict[str, bool]


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Build the application.

    Nothing touches the database here; the engine is created lazily by the
    Database object and disposed by the lifespan shutdown hook. Tests pass
    their own settings and an in-memory Database.
    """
    settings = settings or default_settings
    database = database or Database.from_settings(settings)

    setup_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=SERVICE_VERSION,
        docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan_manager,
    )

    shutdown_manager = GracefulShutdownManager()
    app.state.settings = settings
    app.state.db = database
    app.state.shutdown_manager = shutdown_manager
    app.state.token_issuer = TokenIssuer(settings)
    app.state.password_hasher = PasswordHasher(settings.BCRYPT_ROUNDS)

    # Shared limiter; applications with RATE_LIMIT_ENABLED=false are exempted per request
    app.state.limiter = limiter

    register_exception_handlers(app)

    # Middleware runs in reverse order of registration: logging wraps everything
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestTrackingMiddleware, shutdown_manager=shutdown_manager)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Exposes /metrics only when ENABLE_METRICS=true
    Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        excluded_handlers=["/health", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Health check endpoint for load balancers and probes.
        Returns 503 if the database is unreachable.
        """
        db_healthy = await database.check_connection()
        response = HealthResponse(
            status="healthy" if db_healthy else "unhealthy",
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            environment=settings.ENVIRONMENT,
            checks={"database": db_healthy},
        )
        if not db_healthy:
            logger.warning("Health check failed: database unreachable")
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response.model_dump())
        return response

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    return app


app = create_app()
