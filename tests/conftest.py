"""Pytest shared fixtures."""
import json
import pathlib
import sys
import time
from typing import Optional
from unittest.mock import MagicMock

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import jwt
import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from signup_gateway.core.coreapi import CoreAPIClient


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from hitting the network.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _blocked(method):
        def _stub(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _stub

    monkeypatch.setattr(requests, "request", lambda method, url, *a, **kw: _blocked(method.upper())(url))
    monkeypatch.setattr(requests, "get", _blocked("GET"))
    monkeypatch.setattr(requests, "post", _blocked("POST"))
    monkeypatch.setattr(requests, "patch", _blocked("PATCH"))
    # authlib's OAuth2Session is a requests.Session
    monkeypatch.setattr(
        requests.Session, "request",
        lambda self, method, url, *a, **kw: _blocked(method.upper())(url),
    )


# ─────────────────────────────────────────────────────────────────────────────
# CoreAPI Doubles
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


@pytest.fixture()
def stub_response():
    """Factory for StubResponse objects."""
    return StubResponse


@pytest.fixture()
def coreapi_client():
    """CoreAPIClient double recording get/post/patch calls.

    Configure responses per test:
        coreapi_client.post.return_value = StubResponse({...}, 201)
    """
    client = MagicMock(spec=CoreAPIClient)
    client.token_cache = MagicMock()
    client.token_cache.has_token = True
    return client


# ─────────────────────────────────────────────────────────────────────────────
# RSA Keys and Google ID tokens
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate an RSA key pair for signing test ID tokens."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return {
        "private_key": private_key,
        "private_pem": private_pem,
        "public_key": private_key.public_key(),
    }


def create_google_id_token(
    rsa_key_pair: dict,
    email: str = "alice@example.com",
    audience: str = "test-client.apps.googleusercontent.com",
    issuer: str = "https://accounts.google.com",
    exp_offset: int = 3600,
    kid: str = "google-key-1",
    extra: Optional[dict] = None,
) -> str:
    """Create an RS256-signed token shaped like a Google ID token."""
    now = int(time.time())
    payload = {
        "iss": issuer,
        "aud": audience,
        "sub": "01234567890123456789",
        "email": email,
        "email_verified": True,
        "given_name": "Alice",
        "family_name": "Liddell",
        "iat": now,
        "exp": now + exp_offset,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, rsa_key_pair["private_pem"], algorithm="RS256", headers={"kid": kid})


class StaticJWKClient:
    """PyJWKClient stand-in that always returns one public key."""

    def __init__(self, public_key):
        self.public_key = public_key
        self.calls = 0

    def get_signing_key_from_jwt(self, token):
        self.calls += 1
        return MagicMock(key=self.public_key)


@pytest.fixture()
def jwks_client(rsa_key_pair):
    return StaticJWKClient(rsa_key_pair["public_key"])


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires a reachable CoreAPI)"
    )
