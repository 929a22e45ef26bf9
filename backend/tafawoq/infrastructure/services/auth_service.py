"""
Supabase Token Verification

Verifies Supabase access tokens cryptographically: JWKS (ES256) first,
HS256 with the project JWT secret as a fallback for legacy signing.
Never decodes without verification.
"""

import logging
from typing import Optional

import jwt
from jwt import PyJWKClient

from tafawoq.infrastructure.exceptions import AuthenticationError


logger = logging.getLogger(__name__)


class SupabaseAuthService:
    """Resolves a bearer token to the authenticated user id (``sub`` claim)."""

    AUDIENCE = "authenticated"
    REQUIRED_CLAIMS = ["exp", "sub", "iss"]

    def __init__(
        self,
        supabase_url: str,
        jwt_secret: Optional[str] = None,
        jwks_client: Optional[PyJWKClient] = None,
    ):
        self._issuer = f"{supabase_url.rstrip('/')}/auth/v1"
        self._jwt_secret = jwt_secret
        self._jwks_client = jwks_client

    @property
    def issuer(self) -> str:
        return self._issuer

    @property
    def jwks_client(self) -> PyJWKClient:
        """JWKS client for the project; PyJWKClient caches and refreshes keys."""
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(
                f"{self._issuer}/.well-known/jwks.json",
                cache_keys=True,
            )
        return self._jwks_client

    def _decode_with_jwks(self, token: str) -> dict:
        """Verify JWT using the JWKS endpoint (ES256 asymmetric keys)."""
        signing_key = self.jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            issuer=self._issuer,
            audience=self.AUDIENCE,
            options={"require": self.REQUIRED_CLAIMS},
        )

    def _decode_with_secret(self, token: str) -> dict:
        """Verify JWT using the HS256 symmetric secret."""
        return jwt.decode(
            token,
            self._jwt_secret,
            algorithms=["HS256"],
            issuer=self._issuer,
            audience=self.AUDIENCE,
            options={"require": self.REQUIRED_CLAIMS},
        )

    def verify_token(self, token: str) -> str:
        """
        Verify a token and return its user id.

        Raises:
            AuthenticationError: expired, invalid or unverifiable token
        """
        payload: Optional[dict] = None

        try:
            payload = self._decode_with_jwks(token)
        except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
            logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

        if payload is None and self._jwt_secret:
            try:
                payload = self._decode_with_secret(token)
            except jwt.ExpiredSignatureError as e:
                raise AuthenticationError("Token has expired", original_error=e)
            except jwt.InvalidTokenError as e:
                logger.warning("HS256 JWT verification also failed: %s", e)

        if payload is None:
            raise AuthenticationError("Invalid or unverifiable token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token: missing user ID")

        return user_id
