"""
Authentication routes for id_token exchange.

The web client signs the user in with the OIDC provider itself and posts
the resulting id_token here; a verified token is exchanged for a session
JWT signed by this service.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from society_auth.config import get_settings
from society_auth.auth.session import JWTSessionError, get_current_user
from society_auth.auth.utils import (
    JWKSFetchError,
    TokenValidationError,
    validate_token_and_generate_jwt,
)
from society_auth.models import TokenExchangeRequest, TokenResponse

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


@auth_router.post("/token", response_model=TokenResponse)
async def exchange_token(payload: TokenExchangeRequest) -> TokenResponse:
    """
    Exchange a provider id_token for a session JWT.

    Returns:
        401 if the id_token is rejected, 502 if the key set is unreachable,
        500 if the session token cannot be signed
    """
    settings = get_settings()

    try:
        session_token = await validate_token_and_generate_jwt(payload.id_token)
    except JWKSFetchError as e:
        logger.error(f"JWKS unavailable during token exchange: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="failed to fetch JWKS",
        )
    except TokenValidationError as e:
        logger.info(f"Rejected id_token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTSessionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    return TokenResponse(
        token=session_token,
        expires_in=settings.SESSION_JWT_EXPIRY_MINUTES * 60,
    )


@auth_router.get("/me")
async def me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Return the claims of the caller's session JWT."""
    return {
        "sub": user.get("sub"),
        "email": user.get("email"),
        "exp": user.get("exp"),
    }
