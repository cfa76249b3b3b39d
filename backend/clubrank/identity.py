"""Resolving bearer tokens to user ids."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import jwt

from .config import get_jwt_secret, jwt_algorithm, jwt_audience
from .exceptions import AuthError


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the user id the token was issued to or raise :class:`AuthError`."""


class JwtIdentityVerifier:
    """Verifies HMAC-signed JWTs; the user id is the ``sub`` claim."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    @classmethod
    def from_env(cls) -> "JwtIdentityVerifier":
        return cls(get_jwt_secret(), algorithm=jwt_algorithm(), audience=jwt_audience())

    async def verify(self, token: str) -> str:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("token expired", code="auth_token_expired")
        except jwt.PyJWTError:
            raise AuthError("invalid token")

        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise AuthError("invalid token")
        return user_id

    def issue(self, user_id: str, *, expires_in: int = 3600) -> str:
        """Sign a token for ``user_id`` with the verifier's own key."""

        payload = {
            "sub": user_id,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        if self._audience:
            payload["aud"] = self._audience
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)
