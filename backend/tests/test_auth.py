"""
Security Test Suite - JWT Authentication

Tests that token verification correctly:
- Rejects missing Authorization headers
- Rejects malformed, expired and wrongly signed tokens
- Rejects tokens without a subject
- Accepts properly signed HS256 tokens when JWKS verification fails
"""

import time
from unittest.mock import patch

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from tafawoq.api.dependencies import get_current_user_id, get_services
from tafawoq.infrastructure.exceptions import AuthenticationError
from tafawoq.infrastructure.services.auth_service import SupabaseAuthService


SUPABASE_URL = "https://testproject.supabase.co"
ISSUER = f"{SUPABASE_URL}/auth/v1"
SECRET = "test-jwt-secret-with-enough-length-for-hs256"
USER_ID = "00000000-0000-0000-0000-000000000042"


def _token(secret=SECRET, **claims) -> str:
    payload = {
        "sub": USER_ID,
        "aud": "authenticated",
        "iss": ISSUER,
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_service():
    service = SupabaseAuthService(SUPABASE_URL, jwt_secret=SECRET)
    # No network: JWKS lookup always fails, forcing the HS256 path
    with patch.object(
        service,
        "_decode_with_jwks",
        side_effect=jwt.exceptions.PyJWKClientError("no JWKS in tests"),
    ):
        yield service


# ---------------------------------------------------------------------------
# Service-level verification
# ---------------------------------------------------------------------------


class TestVerifyToken:

    def test_valid_token(self, auth_service):
        assert auth_service.verify_token(_token()) == USER_ID

    def test_expired_token(self, auth_service):
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.verify_token(_token(exp=int(time.time()) - 60))
        assert exc_info.value.message == "Token has expired"

    def test_wrong_secret(self, auth_service):
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.verify_token(_token(secret="another-secret-of-sufficient-length-123"))
        assert exc_info.value.message == "Invalid or unverifiable token"

    def test_wrong_audience(self, auth_service):
        with pytest.raises(AuthenticationError):
            auth_service.verify_token(_token(aud="anon"))

    def test_wrong_issuer(self, auth_service):
        with pytest.raises(AuthenticationError):
            auth_service.verify_token(_token(iss="https://evil.example.com/auth/v1"))

    def test_missing_subject(self, auth_service):
        with pytest.raises(AuthenticationError):
            auth_service.verify_token(_token(sub=None))

    def test_empty_subject(self, auth_service):
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.verify_token(_token(sub=""))
        assert exc_info.value.message == "Invalid token: missing user ID"

    def test_garbage(self, auth_service):
        with pytest.raises(AuthenticationError):
            auth_service.verify_token("not.a.jwt")

    def test_no_secret_and_no_jwks(self):
        service = SupabaseAuthService(SUPABASE_URL, jwt_secret=None)
        with patch.object(
            service,
            "_decode_with_jwks",
            side_effect=jwt.exceptions.PyJWKClientError("no JWKS in tests"),
        ):
            with pytest.raises(AuthenticationError):
                service.verify_token(_token())

    def test_issuer_derived_from_url(self):
        service = SupabaseAuthService(SUPABASE_URL + "/")
        assert service.issuer == ISSUER


# ---------------------------------------------------------------------------
# Dependency: minimal app that uses the real dependency
# ---------------------------------------------------------------------------


class _Services:
    def __init__(self, auth):
        self.auth = auth


@pytest.fixture
def protected_client(auth_service):
    test_app = FastAPI()

    @test_app.get("/protected")
    async def protected_endpoint(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}

    test_app.dependency_overrides[get_services] = lambda: _Services(auth_service)
    return TestClient(test_app, raise_server_exceptions=False)


class TestCurrentUserDependency:

    def test_no_auth_header(self, protected_client):
        resp = protected_client.get("/protected")

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing authorization token"

    def test_invalid_token(self, protected_client):
        resp = protected_client.get("/protected", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_valid_token(self, protected_client):
        resp = protected_client.get("/protected", headers={"Authorization": f"Bearer {_token()}"})

        assert resp.status_code == 200
        assert resp.json() == {"user_id": USER_ID}

    def test_services_not_initialized(self):
        test_app = FastAPI()

        @test_app.get("/protected")
        async def protected_endpoint(user_id: str = Depends(get_current_user_id)):
            return {"user_id": user_id}

        resp = TestClient(test_app).get("/protected", headers={"Authorization": "Bearer x"})
        assert resp.status_code == 503
