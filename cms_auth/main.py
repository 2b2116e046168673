"""
Main FastAPI application for cms_auth
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cms_auth.api.v1.endpoints import auth, mfa, users
from cms_auth.core.config import Settings, get_settings
from cms_auth.core.database import create_db_engine, create_session_factory, dispose_db, init_db
from cms_auth.core.exceptions import AuthError, InsufficientRoleError, WeakPasswordError
from cms_auth.core.logging_config import SecurityLogger, configure_logging
from cms_auth.core.redis_client import RedisClient
from cms_auth.middleware import HTTPMetricsMiddleware, RequestIDMiddleware
from cms_auth.services.jwt_service import JWTService
from cms_auth.services.totp_engine import TotpEngine
from cms_auth.utils.crypto import SecretCipher
from cms_auth.utils.security import PasswordHasher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    settings: Settings = app.state.settings

    # Startup
    configure_logging(settings)
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    init_db(app.state.engine)

    if app.state.redis is None:
        logger.warning(
            "REDIS_URL not set: refresh tokens cannot be revoked and stay valid until they expire"
        )

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app.state.redis is not None:
        app.state.redis.close()
    dispose_db(app.state.engine)


def error_body(exc: AuthError, settings: Settings) -> dict:
    if exc.status_code >= 500:
        body = {"error": exc.default_message}
        if settings.ENVIRONMENT == "development":
            body["type"] = exc.__class__.__name__
        return body

    body = {"error": exc.message}
    if isinstance(exc, InsufficientRoleError):
        body["error"] = exc.default_message
        body["required"] = exc.required
        body["current"] = exc.current
    elif isinstance(exc, WeakPasswordError):
        body["error"] = exc.default_message
        body["details"] = exc.errors
    return body


def register_exception_handlers(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{exc.__class__.__name__} in {request.method} {request.url.path}: {exc.message}"
            )

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc, settings),
            headers=headers
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            details.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))

        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": details}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.exception(f"Unhandled exception in {request.method} {request.url.path}")

        content = {"error": "Internal server error"}
        if settings.ENVIRONMENT == "development":
            content["type"] = exc.__class__.__name__
        return JSONResponse(status_code=500, content=content)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application

    Shared components are built once here from `settings` and kept on
    `app.state`; request dependencies read them from there.

    Args:
        settings: Application settings (defaults to the environment)

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="CMS authentication service - credentials, tokens, two-factor and roles",
        lifespan=lifespan
    )

    engine = create_db_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.hasher = PasswordHasher(rounds=settings.PASSWORD_BCRYPT_COST)
    app.state.cipher = SecretCipher(settings.TWOFA_ENCRYPTION_KEY, salt=settings.TWOFA_KDF_SALT)
    app.state.totp_engine = TotpEngine(
        issuer=settings.TWOFA_ISSUER,
        valid_window=settings.MFA_TOTP_VALID_WINDOW,
        backup_code_count=settings.MFA_BACKUP_CODE_COUNT
    )
    app.state.jwt_service = JWTService(settings)
    app.state.security_logger = SecurityLogger()
    app.state.redis = (
        RedisClient(settings.REDIS_URL, pool_size=settings.REDIS_POOL_SIZE)
        if settings.REDIS_URL else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(HTTPMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint"""
        checks = {}

        try:
            with request.app.state.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            checks["database"] = "healthy"
        except SQLAlchemyError:
            checks["database"] = "unhealthy"

        redis_client = request.app.state.redis
        if redis_client is None:
            checks["redis"] = "disabled"
        else:
            try:
                redis_client.ping()
                checks["redis"] = "healthy"
            except RedisError:
                checks["redis"] = "unhealthy"

        healthy = all(value in ("healthy", "disabled") for value in checks.values())
        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.VERSION,
            "checks": checks,
        }

    @app.get("/metrics")
    def prometheus_metrics():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Include API routers
    app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["authentication"])
    app.include_router(mfa.router, prefix=f"{settings.API_PREFIX}/profile/2fa", tags=["2fa"])
    app.include_router(users.router, prefix=f"{settings.API_PREFIX}/users", tags=["users"])

    return app
