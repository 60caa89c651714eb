"""
Authentication middleware for the local server.

Verifies the bearer JWT issued by the identity provider and extracts the
user identity from its claims. Tokens are checked against either a JWKS
endpoint (RS256, e.g. a Cognito user pool) or a shared HS256 secret.
Without either, bearer-authenticated routes are refused.

The JWT id_token contains:
  - sub: user ID
  - email: user email
  - custom:org_id: organization ID (custom attribute)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from candor.config.settings import Settings
from candor.errors.exceptions import ConfigurationError

logger = logging.getLogger("candor.auth")


@dataclass
class AuthContext:
    """Extracted authentication context from JWT."""

    user_id: str       # sub
    org_id: str        # custom:org_id claim
    email: str = ""    # email claim


class AuthError(Exception):
    """Authentication or authorization failure."""

    def __init__(self, message: str, status: int = 401):
        self.message = message
        self.status = status
        super().__init__(message)


class JWTVerifier:
    """Checks signature, expiry and (when configured) audience and issuer."""

    def __init__(
        self,
        secret: str = "",
        jwks_url: str = "",
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        if not secret and not jwks_url:
            raise ConfigurationError("JWTVerifier needs a shared secret or a JWKS URL")
        self.secret = secret
        self.audience = audience
        self.issuer = issuer
        self._jwks = jwt.PyJWKClient(jwks_url) if jwks_url else None

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["JWTVerifier"]:
        """None when no verification key is configured."""
        if not settings.auth_jwt_secret and not settings.auth_jwks_url:
            return None
        return cls(
            secret=settings.auth_jwt_secret,
            jwks_url=settings.auth_jwks_url,
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )

    def decode(self, token: str) -> dict:
        """Raises jwt.PyJWTError on any verification failure."""
        if self._jwks is not None:
            key = self._jwks.get_signing_key_from_jwt(token).key
            algorithms = ["RS256"]
        else:
            key = self.secret
            algorithms = ["HS256"]
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=self.audience,
            issuer=self.issuer,
            options={"require": ["exp"]},
        )


def extract_auth(headers, verifier: Optional[JWTVerifier]) -> AuthContext:
    """Extract auth context from the Authorization header.

    Args:
        headers: HTTP headers (BaseHTTPRequestHandler.headers or a dict)
        verifier: JWT verifier; None means bearer auth is not configured

    Returns:
        AuthContext with user_id, org_id, email

    Raises:
        AuthError: If no valid auth is present (503 when unconfigured)
    """
    if verifier is None:
        raise AuthError("Bearer authentication is not configured", 503)

    auth_header = headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")

    token = auth_header[7:]  # strip "Bearer "

    try:
        payload = verifier.decode(token)
    except jwt.PyJWTError as e:
        logger.warning(f"JWT rejected: {e}")
        raise AuthError(f"Invalid token: {e}")

    user_id = payload.get("sub", "")
    org_id = payload.get("custom:org_id", "")
    email = payload.get("email", "")

    if not user_id:
        raise AuthError("JWT missing 'sub' claim")
    if not org_id:
        raise AuthError("JWT missing 'custom:org_id' claim", 403)

    logger.info(f"Auth: user={user_id[:8]}... org={org_id} email={email}")
    return AuthContext(user_id=user_id, org_id=org_id, email=email)
