"""
Shared fixtures for the auth service tests.

Environment variables are set before any society_auth module is imported
so that the cached Settings pick them up.
"""

import os

os.environ["OIDC_CLIENT_ID"] = "test-client-id"
os.environ["JWT_KEY"] = "test-session-secret-0123456789abcdef"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWKS_CACHE_SECONDS"] = "3600"
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock, patch

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from society_auth.auth.utils import clear_jwks_cache
from society_auth.config import get_settings
from society_auth.database import Base, SocietyUser, get_db
from society_auth.main import create_app
from society_auth.reset.routes import get_mailer
from society_auth.reset.service import hash_password


# =============================================================================
# Identity provider test keys
# =============================================================================

def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )

    return private_pem.decode(), private_key.public_key()


TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()
OTHER_PRIVATE_KEY, _ = generate_test_keys()
TEST_KID = "test-key-id-2024"
TEST_ISSUER = "https://login.microsoftonline.com/9188040d-6c67-4c5b-b112-36a304b66dad/v2.0"


def create_mock_id_token(
    sub: Optional[str] = "test-user-sub-123",
    kid: Optional[str] = TEST_KID,
    exp_delta_minutes: int = 60,
    issuer: str = TEST_ISSUER,
    audience: str = "test-client-id",
    email: str = "alumni@bpitindia.edu.in",
    private_key: str = TEST_PRIVATE_KEY,
) -> str:
    """Create an id_token signed with a test private key."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "iss": issuer,
        "aud": audience,
        "exp": now + timedelta(minutes=exp_delta_minutes),
        "iat": now,
        "nbf": now,
        "name": "Test Alumni",
        "preferred_username": email,
    }
    if sub is not None:
        payload["sub"] = sub

    headers = {"alg": "RS256"}
    if kid is not None:
        headers["kid"] = kid

    return jwt.encode(payload, private_key, algorithm="RS256", headers=headers)


def create_mock_jwks(kid: str = TEST_KID) -> Dict[str, List[Dict[str, Any]]]:
    """Create a JWKS document publishing the test public key."""
    key = RSAAlgorithm.to_jwk(TEST_PUBLIC_KEY, as_dict=True)
    key["kid"] = kid
    key["use"] = "sig"
    return {"keys": [key]}


def make_jwks_client(*documents: Dict[str, Any]) -> AsyncMock:
    """
    Build an httpx.AsyncClient stand-in whose GET returns each document in turn.
    """
    responses = []
    for document in documents:
        response = Mock()
        response.status_code = 200
        response.raise_for_status = Mock()
        response.json.return_value = document
        responses.append(response)

    client = AsyncMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = False
    client.get.side_effect = responses
    return client


@pytest.fixture(autouse=True)
def reset_jwks_cache():
    clear_jwks_cache()
    yield
    clear_jwks_cache()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def jwks_client():
    """Patch httpx.AsyncClient to serve the test JWKS."""
    client = make_jwks_client(create_mock_jwks(), create_mock_jwks())
    with patch("society_auth.auth.utils.httpx.AsyncClient", return_value=client):
        yield client


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def alumni(db):
    user = SocietyUser(email="alumni@bpitindia.edu.in", password=hash_password("old-password"))
    db.add(user)
    db.commit()
    return user


# =============================================================================
# HTTP
# =============================================================================

class SentMail:
    """Records messages instead of delivering them."""

    def __init__(self):
        self.messages = []

    def __call__(self, recipient: str, subject: str, body_html: str) -> None:
        self.messages.append((recipient, subject, body_html))


@pytest.fixture
def outbox():
    return SentMail()


@pytest.fixture
def client(db, outbox):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: outbox
    return TestClient(app)
