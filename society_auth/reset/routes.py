"""
Password reset routes.

Endpoints
---------
POST /reset-password/send-email
    Email a reset link for a registered address.

POST /reset-password/verify
    Check the emailed code and set the new password.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from society_auth.database import get_db
from society_auth.mail import MailDeliveryError, send_email
from society_auth.models import (
    EmailRequest,
    MessageResponse,
    ResetEmailResponse,
    ResetPasswordRequest,
)
from society_auth.reset.service import (
    Mailer,
    ResetPasswordError,
    UserNotFoundError,
    request_password_reset,
    reset_password,
)

logger = logging.getLogger(__name__)

reset_router = APIRouter(
    prefix="/reset-password",
    tags=["password-reset"],
)


def get_mailer() -> Mailer:
    """Dependency returning the function used to deliver email."""
    return send_email


@reset_router.post("/send-email", response_model=ResetEmailResponse)
def send_reset_email(
    payload: EmailRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> ResetEmailResponse:
    """
    Start the password reset flow for ``payload.email``.

    Returns 404 when the email is not registered and 500 when the
    email cannot be delivered.
    """
    try:
        request_password_reset(db, payload.email, send=mailer)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MailDeliveryError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email",
        )

    return ResetEmailResponse(
        message="Email received for reset Password",
        email=payload.email,
    )


@reset_router.post("/verify", response_model=MessageResponse)
def verify_reset(
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Complete a password reset with the emailed code."""
    try:
        reset_password(
            db,
            token=payload.token,
            email=payload.email,
            new_password=payload.new_password,
            confirm_new_password=payload.confirm_new_password,
        )
    except ResetPasswordError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return MessageResponse(message="Password has been reset successfully")
