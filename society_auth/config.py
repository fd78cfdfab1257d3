"""
Configuration module for the alumni authentication service.

This module uses Pydantic Settings to load and validate environment variables
for OIDC id_token verification, session JWT signing, the user database,
outbound mail, and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for identity-token verification, session JWTs,
    the password-reset flow and the HTTP server is defined here.
    """

    # =========================================================================
    # OIDC Identity Provider (id_token verification)
    # =========================================================================

    OIDC_CLIENT_ID: str = Field(
        ...,
        description="Application (client) ID; id_tokens must carry it as 'aud'",
        min_length=1,
    )

    OIDC_JWKS_URL: str = Field(
        default="https://login.microsoftonline.com/common/discovery/v2.0/keys",
        description="JWKS endpoint publishing the provider's signing keys",
    )

    OIDC_ISSUER_PREFIX: str = Field(
        default="https://login.microsoftonline.com/",
        description="Accepted id_token issuers must start with this prefix",
    )

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache the JWKS document in seconds",
        ge=0,
        le=86400,
    )

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    JWT_KEY: str = Field(
        ...,
        description="Secret key for signing session JWTs",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=60,
        description="Session JWT expiry time in minutes",
        ge=1,
        le=1440,
    )

    SESSION_JWT_ISSUER: str = Field(
        default="society-auth",
        description="'iss' claim stamped on issued session JWTs",
    )

    # =========================================================================
    # Database
    # =========================================================================

    DATABASE_URL: str = Field(
        default="sqlite:///./society.db",
        description="SQLAlchemy database URL holding users and reset codes",
    )

    # =========================================================================
    # Outbound Mail (password reset)
    # =========================================================================

    SMTP_HOST: str = Field(default="smtp.office365.com")

    SMTP_PORT: int = Field(default=587, ge=1, le=65535)

    SMTP_USERNAME: Optional[str] = Field(None)

    SMTP_PASSWORD: Optional[str] = Field(None)

    SMTP_USE_TLS: bool = Field(default=True)

    MAIL_FROM: str = Field(
        default="no-reply@alumni.bpitindia.com",
        description="Sender address for password reset emails",
    )

    RESET_PASSWORD_URL: str = Field(
        default="https://alumni.bpitindia.com/reset-password",
        description="Frontend page that accepts the reset code",
    )

    RESET_CODE_EXPIRY_MINUTES: int = Field(
        default=5,
        description="Lifetime of an emailed reset code in minutes",
        ge=1,
        le=1440,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(default="0.0.0.0")

    PORT: int = Field(default=8080, ge=1, le=65535)

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def smtp_auth_enabled(self) -> bool:
        return bool(self.SMTP_USERNAME and self.SMTP_PASSWORD)

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @field_validator("OIDC_JWKS_URL", "OIDC_ISSUER_PREFIX", "RESET_PASSWORD_URL")
    @classmethod
    def validate_https_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Expected an http(s) URL, got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.

    Example:
        >>> from society_auth.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.OIDC_CLIENT_ID)
    """
    return Settings()


def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors are logged, not raised.

    Example:
        >>> status = validate_configuration()
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    settings = settings or get_settings()
    errors = []
    warnings = []

    if len(set(settings.JWT_KEY)) < 10:
        warnings.append("JWT_KEY looks weak (fewer than 10 distinct characters)")

    if not settings.OIDC_JWKS_URL.startswith("https://"):
        errors.append("OIDC_JWKS_URL must be served over HTTPS")

    if not settings.smtp_auth_enabled:
        warnings.append("SMTP credentials are not set; password reset mail may be rejected")

    if settings.DATABASE_URL.startswith("sqlite"):
        warnings.append("DATABASE_URL points to SQLite (not suitable for multiple workers)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "jwt_expiry_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        "reset_code_expiry_minutes": settings.RESET_CODE_EXPIRY_MINUTES,
    }
