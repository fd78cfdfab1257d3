"""
Password Reset Tests

Covers reset code issue/overwrite, code verification order, bcrypt
hashing and the /reset-password endpoints.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import select

from society_auth.database import SocietyResetPassword, SocietyUser
from society_auth.mail import MailDeliveryError
from society_auth.reset.service import (
    RESET_EMAIL_SUBJECT,
    ResetPasswordError,
    UserNotFoundError,
    build_reset_link,
    find_reset_row,
    hash_password,
    is_expired,
    request_password_reset,
    reset_password,
    verify_password,
)

EMAIL = "alumni@bpitindia.edu.in"


def reset_rows(db):
    return db.scalars(select(SocietyResetPassword)).all()


def expire(db, row):
    row.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()


class TestRequestPasswordReset:

    def test_unknown_email_raises(self, db, outbox):
        with pytest.raises(UserNotFoundError, match="Email not found"):
            request_password_reset(db, "nobody@example.com", send=outbox)

        assert outbox.messages == []
        assert reset_rows(db) == []

    def test_creates_code_and_mails_link(self, db, alumni, outbox, settings):
        row = request_password_reset(db, EMAIL, send=outbox)

        assert row.code
        remaining = row.expires_at - datetime.now(timezone.utc)
        assert timedelta(minutes=settings.RESET_CODE_EXPIRY_MINUTES - 1) < remaining
        assert remaining <= timedelta(minutes=settings.RESET_CODE_EXPIRY_MINUTES)

        recipient, subject, body = outbox.messages[0]
        assert recipient == EMAIL
        assert subject == RESET_EMAIL_SUBJECT
        assert row.code in body
        assert f"{settings.RESET_CODE_EXPIRY_MINUTES} minutes" in body

    def test_second_request_overwrites_code(self, db, alumni, outbox):
        first = request_password_reset(db, EMAIL, send=outbox).code
        second = request_password_reset(db, EMAIL, send=outbox).code

        rows = reset_rows(db)
        assert len(rows) == 1
        assert rows[0].code == second
        assert first != second

    def test_concurrent_insert_falls_back_to_update(self, db, alumni, outbox):
        db.add(SocietyResetPassword(
            code="from-other-request",
            email=EMAIL,
            expires_at=datetime.now(timezone.utc),
        ))
        db.commit()

        calls = []

        def first_lookup_misses(session, email):
            calls.append(email)
            if len(calls) == 1:
                return None
            return find_reset_row(session, email)

        with patch("society_auth.reset.service.find_reset_row", side_effect=first_lookup_misses):
            row = request_password_reset(db, EMAIL, send=outbox)

        rows = reset_rows(db)
        assert len(calls) == 2
        assert len(rows) == 1
        assert rows[0].code == row.code
        assert row.code != "from-other-request"
        assert len(outbox.messages) == 1

    def test_mail_failure_propagates(self, db, alumni):
        def broken(recipient, subject, body):
            raise MailDeliveryError("relay denied")

        with pytest.raises(MailDeliveryError):
            request_password_reset(db, EMAIL, send=broken)

        assert len(reset_rows(db)) == 1


class TestResetPassword:

    @pytest.fixture
    def code(self, db, alumni, outbox):
        return request_password_reset(db, EMAIL, send=outbox).code

    def test_success_updates_hash_and_consumes_code(self, db, code):
        user = reset_password(db, code, EMAIL, "new-secret", "new-secret")

        assert verify_password("new-secret", user.password)
        assert not verify_password("old-password", user.password)
        assert reset_rows(db) == []

    def test_code_cannot_be_replayed(self, db, code):
        reset_password(db, code, EMAIL, "new-secret", "new-secret")

        with pytest.raises(ResetPasswordError, match="Invalid or expired token"):
            reset_password(db, code, EMAIL, "other", "other")

    def test_empty_token(self, db, code):
        with pytest.raises(ResetPasswordError, match="^Invalid token$"):
            reset_password(db, "", EMAIL, "a", "a")

    def test_code_bound_to_email(self, db, code):
        with pytest.raises(ResetPasswordError, match="Invalid or expired token"):
            reset_password(db, code, "someone@else.org", "a", "a")

    def test_expired_code(self, db, code):
        expire(db, reset_rows(db)[0])

        with pytest.raises(ResetPasswordError, match="Token has expired"):
            reset_password(db, code, EMAIL, "a", "a")

        assert len(reset_rows(db)) == 1

    def test_expiry_checked_before_password_match(self, db, code):
        expire(db, reset_rows(db)[0])

        with pytest.raises(ResetPasswordError, match="Token has expired"):
            reset_password(db, code, EMAIL, "a", "b")

    def test_passwords_must_match(self, db, code):
        with pytest.raises(ResetPasswordError, match="Passwords do not match"):
            reset_password(db, code, EMAIL, "new-secret", "new-secreT")

        assert len(reset_rows(db)) == 1

    def test_empty_password_rejected(self, db, code):
        with pytest.raises(ResetPasswordError, match="must not be empty"):
            reset_password(db, code, EMAIL, "", "")

    def test_overlong_password_rejected(self, db, code):
        password = "x" * 73
        with pytest.raises(ResetPasswordError, match="too long"):
            reset_password(db, code, EMAIL, password, password)

    def test_deleted_user(self, db, code):
        db.delete(db.scalars(select(SocietyUser)).one())
        db.commit()

        with pytest.raises(UserNotFoundError, match="Alumni not found"):
            reset_password(db, code, EMAIL, "new-secret", "new-secret")


class TestHelpers:

    def test_is_expired_treats_naive_as_utc(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        assert is_expired(datetime(2024, 1, 1, 11, 59), now=now)
        assert not is_expired(datetime(2024, 1, 1, 12, 0), now=now)
        assert not is_expired(datetime(2024, 1, 1, 12, 5, tzinfo=timezone.utc), now=now)

    def test_build_reset_link(self, settings):
        link = build_reset_link("abc_123", "a+b@example.com")
        parsed = urlparse(link)

        assert link.startswith(settings.RESET_PASSWORD_URL)
        assert parse_qs(parsed.query) == {"token": ["abc_123"], "email": ["a+b@example.com"]}

    def test_hash_is_bcrypt(self):
        hashed = hash_password("pw")
        assert hashed.startswith("$2")
        assert verify_password("pw", hashed)
        assert not verify_password("pw", "not-a-hash")


class TestResetEndpoints:

    def test_full_flow(self, client, db, alumni, outbox):
        response = client.post("/reset-password/send-email", json={"email": EMAIL})

        assert response.status_code == 200
        assert response.json() == {"message": "Email received for reset Password", "email": EMAIL}
        assert "token" not in response.json()

        code = reset_rows(db)[0].code
        response = client.post(
            "/reset-password/verify",
            json={
                "token": code,
                "Email": EMAIL,
                "NewPassword": "fresh-pass",
                "ConfirmNewPassword": "fresh-pass",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Password has been reset successfully"}
        db.expire_all()
        assert verify_password("fresh-pass", db.scalars(select(SocietyUser)).one().password)

    def test_send_email_unknown_address(self, client, db):
        response = client.post("/reset-password/send-email", json={"email": "ghost@example.com"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Email not found"

    def test_send_email_rejects_malformed_body(self, client):
        assert client.post("/reset-password/send-email", json={"mail": EMAIL}).status_code == 422
        assert client.post("/reset-password/send-email", json={"email": "not-an-email"}).status_code == 422

    def test_send_email_delivery_failure(self, client, db, alumni):
        from society_auth.reset.routes import get_mailer

        def broken(recipient, subject, body):
            raise MailDeliveryError("timeout")

        client.app.dependency_overrides[get_mailer] = lambda: broken
        response = client.post("/reset-password/send-email", json={"email": EMAIL})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send email"

    def test_verify_accepts_snake_case(self, client, db, alumni, outbox):
        client.post("/reset-password/send-email", json={"email": EMAIL})
        code = reset_rows(db)[0].code

        response = client.post(
            "/reset-password/verify",
            json={
                "token": code,
                "email": EMAIL,
                "new_password": "fresh-pass",
                "confirm_new_password": "fresh-pass",
            },
        )

        assert response.status_code == 200

    def test_padded_email_accepted_by_both_endpoints(self, client, db, alumni, outbox):
        padded = f"  {EMAIL} "
        client.post("/reset-password/send-email", json={"email": padded})
        code = reset_rows(db)[0].code

        response = client.post(
            "/reset-password/verify",
            json={
                "token": code,
                "Email": padded,
                "NewPassword": "fresh-pass",
                "ConfirmNewPassword": "fresh-pass",
            },
        )

        assert response.status_code == 200

    def test_verify_errors_are_400(self, client, db, alumni, outbox):
        client.post("/reset-password/send-email", json={"email": EMAIL})
        code = reset_rows(db)[0].code

        missing = client.post("/reset-password/verify", json={"Email": EMAIL})
        mismatch = client.post(
            "/reset-password/verify",
            json={"token": code, "Email": EMAIL, "NewPassword": "a1", "ConfirmNewPassword": "a2"},
        )
        unknown = client.post(
            "/reset-password/verify",
            json={"token": "bogus", "Email": EMAIL, "NewPassword": "a", "ConfirmNewPassword": "a"},
        )

        assert (missing.status_code, missing.json()["detail"]) == (400, "Invalid token")
        assert (mismatch.status_code, mismatch.json()["detail"]) == (400, "Passwords do not match")
        assert (unknown.status_code, unknown.json()["detail"]) == (400, "Invalid or expired token")
