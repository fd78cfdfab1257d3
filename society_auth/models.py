"""
Data Models Module

This module defines Pydantic models for request/response validation
throughout the authentication service.

Models are organized by functional area:
- Token exchange models (id_token in, session JWT out)
- Password reset models (reset email request, reset verification)
- Health and error models
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Token Exchange Models
# ============================================================================

class TokenExchangeRequest(BaseModel):
    """Request carrying the identity provider's id_token."""
    id_token: str = Field(..., description="OIDC id_token issued by the identity provider", min_length=1)


class TokenResponse(BaseModel):
    """Response model containing the session JWT and metadata."""
    token: str = Field(..., description="Session JWT token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Token expiration time in seconds")


# ============================================================================
# Password Reset Models
# ============================================================================

class EmailRequest(BaseModel):
    """Request model for starting the password reset flow."""
    email: str = Field(..., description="Email address of the account", min_length=3, max_length=320)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class ResetPasswordRequest(BaseModel):
    """
    Request model for completing a password reset.

    The wire names match the existing web client ("NewPassword", "Email",
    "ConfirmNewPassword", "token"); snake_case names are accepted too.
    """
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(default="", description="Reset code received by email")
    email: str = Field(default="", alias="Email", description="Email address the code was sent to")
    new_password: str = Field(default="", alias="NewPassword", description="New password")
    confirm_new_password: str = Field(
        default="", alias="ConfirmNewPassword", description="Repeat of the new password"
    )

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class ResetEmailResponse(BaseModel):
    """Response returned once the reset email has been sent."""
    message: str = Field(..., description="Human-readable status")
    email: str = Field(..., description="Address the reset link was sent to")


class MessageResponse(BaseModel):
    """Plain status message response."""
    message: str


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Error timestamp")
