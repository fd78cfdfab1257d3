"""
Authentication utilities for OIDC id_token verification and JWKS management.

This module handles:
- Fetching and caching the identity provider's JWKS (JSON Web Key Set)
- Matching a token's 'kid' header against the published keys
- Verifying id_token signature, expiry, issuer and audience
- Exchanging a verified id_token for a locally signed session JWT
"""

import logging
import time
from typing import Dict, Any, Optional

import httpx
from jose import jwt, jwk, JWTError

from society_auth.config import get_settings
from society_auth.auth.session import create_session_jwt

logger = logging.getLogger(__name__)

RSA_ALGORITHMS = ("RS256", "RS384", "RS512")


# =============================================================================
# Exceptions
# =============================================================================

class TokenValidationError(Exception):
    """Raised when an id_token is rejected."""


class JWKSFetchError(TokenValidationError):
    """Raised when the JWKS document cannot be retrieved."""


class SigningKeyNotFoundError(TokenValidationError):
    """Raised when no published key matches the token's kid."""


class InvalidIssuerOrAudienceError(TokenValidationError):
    """Raised when the iss or aud claim does not match configuration."""


# =============================================================================
# JWKS Cache
# =============================================================================

_jwks_cache: Optional[Dict[str, Any]] = None
_jwks_cache_time: float = 0.0


def clear_jwks_cache() -> None:
    global _jwks_cache, _jwks_cache_time
    _jwks_cache = None
    _jwks_cache_time = 0.0


async def fetch_jwks(force_refresh: bool = False) -> Dict[str, Any]:
    """
    Fetch the JWKS document with caching.

    Results are cached based on the JWKS_CACHE_SECONDS setting.

    Args:
        force_refresh: If True, bypass cache and fetch fresh JWKS

    Returns:
        JWKS document containing keys

    Raises:
        JWKSFetchError: If the endpoint is unreachable or the response is invalid
    """
    global _jwks_cache, _jwks_cache_time

    settings = get_settings()
    current_time = time.time()

    if (
        not force_refresh
        and _jwks_cache
        and (current_time - _jwks_cache_time) < settings.JWKS_CACHE_SECONDS
    ):
        return _jwks_cache

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(settings.OIDC_JWKS_URL, timeout=10.0)
            response.raise_for_status()
            jwks_data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to fetch JWKS from {settings.OIDC_JWKS_URL}: {e}")
        raise JWKSFetchError(f"failed to fetch JWKS: {e}") from e

    if not isinstance(jwks_data, dict) or not isinstance(jwks_data.get("keys"), list):
        raise JWKSFetchError("failed to fetch JWKS: response missing 'keys' field")

    if not all(isinstance(key, dict) for key in jwks_data["keys"]):
        raise JWKSFetchError("failed to fetch JWKS: 'keys' entries must be objects")

    _jwks_cache = jwks_data
    _jwks_cache_time = current_time

    logger.info(
        "Fetched JWKS",
        extra={"jwks_url": settings.OIDC_JWKS_URL, "key_count": len(jwks_data["keys"])},
    )
    return jwks_data


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Return the JWK from the key set whose kid matches the token header.

    Raises:
        TokenValidationError: If the header is malformed or has no kid
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise TokenValidationError(f"invalid token: {e}") from e

    kid = unverified_header.get("kid")
    if not kid:
        raise TokenValidationError("invalid token: header missing 'kid'")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None


# =============================================================================
# ID Token Verification
# =============================================================================

async def verify_id_token(id_token: str) -> Dict[str, Any]:
    """
    Verify and decode an id_token issued by the OIDC provider.

    Steps:
    1. Reads the unverified header and requires an RSA signing method
    2. Finds the public key by kid, refetching once in case keys rotated
    3. Verifies the signature and time-based claims
    4. Validates the issuer prefix and the audience

    Returns:
        Dictionary of verified token claims

    Raises:
        TokenValidationError: Or one of its subclasses on any failure
    """
    settings = get_settings()

    try:
        header = jwt.get_unverified_header(id_token)
    except JWTError as e:
        raise TokenValidationError(f"invalid token: {e}") from e

    algorithm = header.get("alg")
    if algorithm not in RSA_ALGORITHMS:
        raise TokenValidationError(f"unexpected signing method: {algorithm}")

    jwks = await fetch_jwks()
    signing_key = get_signing_key(id_token, jwks)
    if not signing_key:
        jwks = await fetch_jwks(force_refresh=True)
        signing_key = get_signing_key(id_token, jwks)

        if not signing_key:
            raise SigningKeyNotFoundError(
                f"failed to find key: no JWKS entry for kid '{header.get('kid')}'"
            )

    try:
        public_key = jwk.construct(signing_key, algorithm=algorithm)
    except Exception as e:
        raise TokenValidationError(f"failed to construct public key from JWK: {e}") from e

    try:
        claims = jwt.decode(
            id_token,
            public_key.to_pem().decode("utf-8"),
            algorithms=[algorithm],
            options={
                "verify_signature": True,
                "verify_aud": False,
                "verify_iss": False,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iat": True,
                "verify_at_hash": False,
                "leeway": 10,
            },
        )
    except JWTError as e:
        raise TokenValidationError(f"invalid token: {e}") from e

    issuer = claims.get("iss")
    audience = claims.get("aud")
    if (
        not isinstance(issuer, str)
        or not issuer.startswith(settings.OIDC_ISSUER_PREFIX)
        or audience != settings.OIDC_CLIENT_ID
    ):
        logger.warning(
            "Rejected id_token issuer/audience",
            extra={"issuer": issuer, "audience": audience},
        )
        raise InvalidIssuerOrAudienceError("invalid issuer or audience")

    return claims


async def validate_token_and_generate_jwt(id_token: str) -> str:
    """
    Validate a provider id_token and return a new locally signed session JWT.

    Raises:
        TokenValidationError: If the id_token is rejected
        JWTSessionError: If the session token cannot be signed
    """
    claims = await verify_id_token(id_token)

    subject = claims.get("sub")
    if not subject:
        raise TokenValidationError("invalid token: missing 'sub' claim")

    extra = {}
    email = extract_email_from_claims(claims)
    if email:
        extra["email"] = email

    return create_session_jwt(subject, extra_claims=extra)


def extract_email_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    """
    Extract email address from id_token claims.

    The provider may use different claim names depending on configuration:
    preferred_username, upn or email.
    """
    for claim_name in ["preferred_username", "upn", "email"]:
        email = claims.get(claim_name)
        if isinstance(email, str) and "@" in email:
            return email.lower().strip()

    return None
