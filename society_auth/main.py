"""
FastAPI Application Factory
===========================

Entry point for the alumni authentication service.

Routers:
    - /auth/*            : id_token exchange and session inspection
    - /reset-password/*  : Emailed-code password reset
    - /health            : Health check endpoint

Environment Variables Required:
    - OIDC_CLIENT_ID: Application (client) ID expected as id_token audience
    - JWT_KEY: Secret for signing session JWTs
    - DATABASE_URL: SQLAlchemy URL of the user database
    - SMTP_USERNAME / SMTP_PASSWORD: Credentials for reset emails
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn society_auth.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn society_auth.main:app --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from society_auth import __version__
from society_auth.auth import auth_router
from society_auth.auth.utils import clear_jwks_cache
from society_auth.config import get_settings, validate_configuration
from society_auth.database import init_db
from society_auth.models import ErrorResponse, HealthResponse
from society_auth.reset import reset_router


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Validate configuration and report problems
        - Create missing database tables

    Shutdown tasks:
        - Clear the JWKS cache
    """
    settings = get_settings()

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("society_auth.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    init_db()

    logger.info(
        "Auth service started",
        extra={
            "service": "society-auth",
            "version": __version__,
            "jwt_expiry_minutes": report["jwt_expiry_minutes"],
        }
    )

    yield

    clear_jwks_cache()
    logger.info("Auth service shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware
        - Route handlers
        - Exception handlers
    """
    settings = get_settings()

    app = FastAPI(
        title="Society Auth Service",
        description="OIDC token exchange and password reset for the alumni website",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)
    app.include_router(reset_router)

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service="society-auth", version=__version__)

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """
        Root endpoint with service information.
        """
        return {
            "service": "society-auth",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "auth": "/auth",
                "reset_password": "/reset-password",
            }
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("society_auth.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        error = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            details={"exception": str(exc)} if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=error.model_dump(mode="json"))

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "society_auth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
