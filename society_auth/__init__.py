"""
Alumni association authentication service.

Exchanges OIDC id_tokens for locally signed session JWTs and runs the
emailed-code password reset flow for society accounts.
"""

__version__ = "1.0.0"
