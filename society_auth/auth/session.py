"""
JWT Session Management Module
==============================

Handles creation and verification of the locally signed session JWTs that
replace a verified third-party id_token.

Tokens are signed with the shared JWT_KEY using an HMAC algorithm
(HS256 by default) and carry the id_token subject, an issue time,
an expiry and this service's issuer.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import jwt
from jwt.exceptions import InvalidTokenError, ExpiredSignatureError
from fastapi import HTTPException, status, Header

from society_auth.config import get_settings

logger = logging.getLogger(__name__)


class JWTSessionError(Exception):
    """Raised when a session JWT cannot be generated."""


# =============================================================================
# Token Creation
# =============================================================================

def create_session_jwt(
    subject: str,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a session JWT for the given subject.

    Args:
        subject: Stable user identifier (the id_token 'sub' claim)
        extra_claims: Optional additional claims; standard claims win on conflict

    Returns:
        Encoded JWT string

    Raises:
        JWTSessionError: If the subject is empty or signing fails

    Example:
        >>> token = create_session_jwt("AAAAAAAAAAAAAAAAAAAAAIkzqFVrSaSaFHy782bbtaQ")
    """
    if not subject:
        raise JWTSessionError("failed to generate JWT: missing subject")

    settings = get_settings()
    now = datetime.now(timezone.utc)

    payload: Dict[str, Any] = dict(extra_claims or {})
    payload.update({
        "sub": str(subject),
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_JWT_EXPIRY_MINUTES),
        "iss": settings.SESSION_JWT_ISSUER,
    })

    try:
        token = jwt.encode(
            payload,
            settings.JWT_KEY,
            algorithm=settings.SESSION_JWT_ALGORITHM,
        )
    except Exception as e:
        logger.error(f"Failed to create session JWT: {e}", exc_info=True)
        raise JWTSessionError(f"failed to generate JWT: {e}") from e

    logger.debug(
        "Created session JWT",
        extra={
            "user_id": payload["sub"],
            "expires_in_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        },
    )
    return token


# =============================================================================
# Token Verification
# =============================================================================

def verify_session_jwt(token: str) -> Dict[str, Any]:
    """
    Verify and decode a session JWT.

    Raises:
        HTTPException: 401 when the token is missing, expired, or invalid
    """
    if not token:
        logger.warning("Empty token provided for verification")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No authentication token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = get_settings()

    try:
        decoded = jwt.decode(
            token,
            settings.JWT_KEY,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.SESSION_JWT_ISSUER,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat", "sub"],
            },
        )
    except ExpiredSignatureError:
        logger.warning("Session JWT expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidTokenError as e:
        logger.warning(f"Invalid session JWT: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("Session JWT verified", extra={"user_id": decoded.get("sub")})
    return decoded


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or not 'Bearer <token>'
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: 'Bearer <token>'",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return parts[1]


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    authorization: Optional[str] = Header(None)
) -> Dict[str, Any]:
    """
    FastAPI dependency to extract and verify the session JWT from a request.

    Usage in routes:
        @router.get("/protected")
        async def protected_route(user: dict = Depends(get_current_user)):
            return {"sub": user["sub"]}
    """
    token = extract_token_from_header(authorization)
    return verify_session_jwt(token)


__all__ = [
    "create_session_jwt",
    "verify_session_jwt",
    "extract_token_from_header",
    "get_current_user",
    "JWTSessionError",
]
