import time
from typing import Any

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt.utils import to_base64url_uint

ISSUER = "https://token.actions.githubusercontent.com"
AUDIENCE = "https://api.example.com"
KEY_ID = "test-key-1"
JWKS_URL = "https://jwks.test/.well-known/jwks"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def jwk_for(key: rsa.RSAPrivateKey, kid: str = KEY_ID) -> dict[str, str]:
    numbers = key.public_key().public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": "RS256",
        "n": to_base64url_uint(numbers.n).decode("ascii"),
        "e": to_base64url_uint(numbers.e).decode("ascii"),
    }


@pytest.fixture
def jwks_document(private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    return {"keys": [jwk_for(private_key)]}


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, invalid_json: bool = False):
        self.status_code = status_code
        self._body = body
        self._invalid_json = invalid_json

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class FakeSession:
    """
    Minimal requests.Session stub.
    Serves a canned response (or raises) and records every GET.
    """

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response or FakeResponse(body={"keys": []})
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, *, timeout: float) -> FakeResponse:
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_session(jwks_document: dict[str, Any]) -> FakeSession:
    return FakeSession(FakeResponse(body=jwks_document))


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def default_claims(**overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "sub": "repo:myorg/myrepo:ref:refs/heads/main",
        "aud": [AUDIENCE],
        "exp": now + 300,
        "iat": now,
        "nbf": now,
        "repository": "myorg/myrepo",
        "repository_owner": "myorg",
        "repository_owner_id": "12345",
        "repository_visibility": "private",
        "repository_id": "67890",
        "ref": "refs/heads/main",
        "ref_type": "branch",
        "sha": "abc123def456",
        "workflow": "CI",
        "workflow_ref": "myorg/myrepo/.github/workflows/ci.yml@refs/heads/main",
        "workflow_sha": "abc123def456",
        "job_workflow_ref": "myorg/myrepo/.github/workflows/ci.yml@refs/heads/main",
        "job_workflow_sha": "abc123def456",
        "event_name": "push",
        "run_id": "123456789",
        "run_number": "42",
        "run_attempt": "1",
        "runner_environment": "github-hosted",
        "actor": "johndoe",
        "actor_id": "11111",
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


@pytest.fixture
def make_token(private_key: rsa.RSAPrivateKey):
    """
    Factory fixture that signs a token.

    Usage in tests:
        token = make_token(ref="refs/heads/develop")
        token = make_token(kid="other", algorithm="RS512")
    """

    def _make(
        *,
        kid: str | None = KEY_ID,
        algorithm: str = "RS256",
        key: Any = None,
        **claims: Any,
    ) -> str:
        headers = {"kid": kid} if kid is not None else {}
        return jwt.encode(
            default_claims(**claims),
            key if key is not None else private_key,
            algorithm=algorithm,
            headers=headers,
        )

    return _make


@pytest.fixture
def make_payload():
    """Factory fixture returning the default claim dict with overrides applied."""
    return default_claims


@pytest.fixture
def make_jwk():
    """Factory fixture returning the JWKS entry for a private key."""
    return jwk_for


@pytest.fixture
def make_response():
    """Factory fixture building a fake HTTP response."""

    def _make(*, status_code: int = 200, body: Any = None, invalid_json: bool = False):
        return FakeResponse(status_code=status_code, body=body, invalid_json=invalid_json)

    return _make


@pytest.fixture
def make_session(make_response):
    """
    Factory fixture building a fake session.

    Usage in tests:
        session = make_session(status_code=500)
        session = make_session(error=requests.ConnectionError("boom"))
    """

    def _make(*, error: Exception | None = None, **response: Any) -> FakeSession:
        return FakeSession(make_response(**response), error=error)

    return _make
