"""
JWT authentication provider.

Tokens are issued by the external identity provider and signed with a
shared HMAC secret. The ``sub`` claim is the user id.
"""

from __future__ import annotations

from typing import Any

from jose import JWTError, jwt

from pepzi.core.config import Settings
from pepzi.core.exceptions import AuthenticationError
from pepzi.interfaces.auth_provider import IAuthProvider, User


class JwtAuthProvider(IAuthProvider):
    """Auth provider with HS256 JWT validation."""

    def __init__(self, settings: Settings):
        if not settings.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set for jwt auth")
        self._settings = settings

    def _decode_token(self, token: str) -> dict[str, Any]:
        options = {
            "verify_aud": bool(self._settings.JWT_AUDIENCE),
            "verify_iss": bool(self._settings.JWT_ISSUER),
        }
        return jwt.decode(
            token,
            self._settings.JWT_SECRET,
            algorithms=["HS256"],
            audience=self._settings.JWT_AUDIENCE or None,
            issuer=self._settings.JWT_ISSUER or None,
            options=options,
        )

    async def verify_token(self, token: str) -> User:
        try:
            claims = self._decode_token(token)
        except JWTError as e:
            raise AuthenticationError("Invalid token", details={"reason": str(e)}) from e
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")
        return User(
            id=str(subject),
            email=claims.get("email"),
            display_name=claims.get("name"),
        )

    def is_enabled(self) -> bool:
        return True
