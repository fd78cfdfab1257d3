"""
Authentication Package

This package exchanges identity-provider id_tokens for locally signed
session JWTs.

Modules:
- routes: Public authentication endpoints (/auth/token, /auth/me)
- utils: JWKS fetching, caching, and id_token verification
- session: Session JWT creation and validation logic

The exchange flow:
1. Client signs in with the OIDC provider and receives an id_token
2. Client posts the id_token to /auth/token
3. Service matches the token's kid against the provider JWKS and verifies it
4. Service checks issuer and audience, then issues a session JWT
5. Client uses the session JWT for subsequent API requests
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
