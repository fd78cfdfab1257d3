"""
Password reset package.

Modules:
- service: reset code issue/verify logic and bcrypt password hashing
- routes: /reset-password endpoints
"""

from .routes import reset_router

__all__ = [
    "reset_router",
]
