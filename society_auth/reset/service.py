"""
Password reset service.

Issues single-use reset codes, mails them to the account owner, and
swaps the stored bcrypt hash once a code is presented before it expires.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import urlencode

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from society_auth.config import get_settings
from society_auth.database import SocietyResetPassword, SocietyUser
from society_auth.mail import render_reset_email, send_email

logger = logging.getLogger(__name__)

RESET_EMAIL_SUBJECT = "Password Reset Request"

# bcrypt only looks at the first 72 bytes of a secret
BCRYPT_MAX_BYTES = 72

Mailer = Callable[[str, str, str], None]


class ResetPasswordError(Exception):
    """The reset request is invalid; maps to 400."""


class UserNotFoundError(Exception):
    """No account exists for the given email; maps to 404."""


# =============================================================================
# Helpers
# =============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return now > as_utc(expires_at)


def generate_reset_code() -> str:
    return secrets.token_urlsafe(32)


def build_reset_link(code: str, email: str) -> str:
    base = get_settings().RESET_PASSWORD_URL
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({'token': code, 'email': email})}"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def find_user(db: Session, email: str) -> Optional[SocietyUser]:
    return db.scalars(select(SocietyUser).where(SocietyUser.email == email)).first()


def find_reset_row(db: Session, email: str) -> Optional[SocietyResetPassword]:
    return db.scalars(
        select(SocietyResetPassword).where(SocietyResetPassword.email == email)
    ).first()


# =============================================================================
# Operations
# =============================================================================

def request_password_reset(
    db: Session,
    email: str,
    send: Mailer = send_email,
) -> SocietyResetPassword:
    """
    Issue a reset code for ``email`` and mail the reset link.

    An existing code for the same email is overwritten, so only the most
    recently mailed link works.

    Raises:
        UserNotFoundError: If no account has this email
        MailDeliveryError: If the email cannot be sent
    """
    settings = get_settings()

    if find_user(db, email) is None:
        logger.info("Password reset requested for unknown email")
        raise UserNotFoundError("Email not found")

    code = generate_reset_code()
    expires_at = utcnow() + timedelta(minutes=settings.RESET_CODE_EXPIRY_MINUTES)

    reset_row = find_reset_row(db, email)
    if reset_row is not None:
        reset_row.code = code
        reset_row.expires_at = expires_at
        db.commit()
    else:
        reset_row = SocietyResetPassword(code=code, email=email, expires_at=expires_at)
        db.add(reset_row)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent request inserted the row for this email first
            db.rollback()
            reset_row = find_reset_row(db, email)
            if reset_row is None:
                raise
            reset_row.code = code
            reset_row.expires_at = expires_at
            db.commit()

    body = render_reset_email(build_reset_link(code, email), settings.RESET_CODE_EXPIRY_MINUTES)
    send(email, RESET_EMAIL_SUBJECT, body)

    logger.info("Password reset email sent", extra={"expires_at": expires_at.isoformat()})
    return reset_row


def reset_password(
    db: Session,
    token: str,
    email: str,
    new_password: str,
    confirm_new_password: str,
) -> SocietyUser:
    """
    Verify a reset code and store the new password hash.

    Raises:
        ResetPasswordError: Missing, unknown or expired code; password mismatch
        UserNotFoundError: If the account was removed after the code was issued
    """
    if not token:
        raise ResetPasswordError("Invalid token")

    reset_row = db.scalars(
        select(SocietyResetPassword).where(
            SocietyResetPassword.code == token,
            SocietyResetPassword.email == email,
        )
    ).first()
    if reset_row is None:
        raise ResetPasswordError("Invalid or expired token")

    if is_expired(reset_row.expires_at):
        raise ResetPasswordError("Token has expired")

    if new_password != confirm_new_password:
        raise ResetPasswordError("Passwords do not match")

    if not new_password:
        raise ResetPasswordError("Password must not be empty")

    if len(new_password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ResetPasswordError("Password is too long")

    hashed = hash_password(new_password)

    user = find_user(db, reset_row.email)
    if user is None:
        raise UserNotFoundError("Alumni not found")

    user.password = hashed
    db.delete(reset_row)
    db.commit()

    logger.info("Password reset completed", extra={"user_id": user.id})
    return user
