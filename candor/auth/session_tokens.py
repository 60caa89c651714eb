"""
Session Tokens — short-lived HMAC-signed tokens.

Issued to an authenticated user for a single session and verified by the
realtime layer without a database lookup.

Token format:
    base64url(json payload) "." base64url(hmac_sha256(secret, encoded payload))

Payload: {"userId", "orgId", "sessionId", "exp"} with exp in epoch
milliseconds. Both segments are unpadded base64url.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from candor.errors.exceptions import ConfigurationError

logger = logging.getLogger("candor.auth")

DEFAULT_TTL_SECONDS = 60


@dataclass(frozen=True)
class SessionTokenPayload:
    user_id: str
    org_id: str
    session_id: str
    exp: int        # epoch milliseconds


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = -len(segment) % 4
    return base64.urlsafe_b64decode(segment + "=" * padding)


class SessionTokenIssuer:
    """Issues and verifies session tokens with a shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret.encode() if secret else b""
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def issue(self, user_id: str, org_id: str, session_id: str) -> str:
        """
        Create a token for this user and session.

        Raises:
            ConfigurationError: if no signing secret is configured.
        """
        if not self._secret:
            raise ConfigurationError("SESSION_TOKEN_SECRET is not configured")

        payload = {
            "userId": user_id,
            "orgId": org_id,
            "sessionId": session_id,
            "exp": int(self._clock() * 1000) + self.ttl_seconds * 1000,
        }
        encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        return f"{encoded}.{self._sign(encoded)}"

    def verify(self, token: str) -> Optional[SessionTokenPayload]:
        """Return the payload if the token is authentic and unexpired, else None."""
        if not self._secret or not token:
            return None

        parts = token.split(".")
        if len(parts) != 2 or not all(parts):
            return None
        encoded, signature = parts

        if not hmac.compare_digest(signature.encode(), self._sign(encoded).encode()):
            logger.warning("Session token signature mismatch")
            return None

        try:
            data = json.loads(_b64decode(encoded))
            payload = SessionTokenPayload(
                user_id=str(data["userId"]),
                org_id=str(data["orgId"]),
                session_id=str(data["sessionId"]),
                exp=int(data["exp"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Malformed session token payload: {e}")
            return None

        if payload.exp < int(self._clock() * 1000):
            return None
        return payload

    def _sign(self, encoded: str) -> str:
        digest = hmac.new(self._secret, encoded.encode(), hashlib.sha256).digest()
        return _b64encode(digest)
