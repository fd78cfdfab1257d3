"""
Outbound email for account notifications.

Messages are sent as HTML over SMTP with STARTTLS, using the
SMTP_* settings.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from society_auth.config import get_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised when the SMTP server does not accept a message."""


def send_email(recipient: str, subject: str, body_html: str) -> None:
    """
    Send an HTML email to a single recipient.

    Raises:
        MailDeliveryError: On connection, authentication, or delivery failure
    """
    settings = get_settings()

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.MAIL_FROM
    msg["To"] = recipient
    msg.attach(MIMEText(body_html, "html"))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.smtp_auth_enabled:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(
            f"Error sending email: {e}",
            extra={"smtp_host": settings.SMTP_HOST, "subject": subject},
        )
        raise MailDeliveryError(str(e)) from e

    logger.info("Email sent", extra={"subject": subject})


def render_reset_email(reset_link: str, expiry_minutes: int) -> str:
    """Render the password reset email body."""
    link = escape(reset_link, quote=True)
    return f"""
    <p>Dear User,</p>

    <p>We received a request to reset your password for your BPIT Alumni Website account.</p>

    <p>Please click the link below to Change your password:</p>

    <p><a href="{link}"><strong>Click Here</strong></a></p>

    <p>This link is valid for the next {expiry_minutes} minutes. If you did not request for a password reset, please ignore this email and your password will remain unchanged.</p>

    <p>If you have any questions or need further assistance, feel free to contact our support team.</p>

    <p>Best regards,</p>
    <p>BPIT Team</p>

    <hr>
    <p>Bhagwan Parshuram Institute of Technology</p>
    <p>Alumni Association</p>
    <p><a href="https://alumni.bpitindia.com/">BPIT Alumni Website</a></p>"""
