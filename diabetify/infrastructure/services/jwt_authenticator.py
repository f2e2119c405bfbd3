"""Bearer token verification with PyJWT."""

from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
import structlog

from diabetify.domain.entities.errors import AuthenticationError

logger = structlog.get_logger(__name__)

USER_ID_CLAIM = "user_id"


class JWTAuthenticator:
    def __init__(self, secret_key: Optional[str], algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def decode(self, token: str) -> Dict[str, Any]:
        if not self._secret_key:
            logger.error("auth.secret_missing")
            raise AuthenticationError("Authentication is not configured")
        try:
            return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc

    def authenticate(self, token: str) -> int:
        """Return the caller's user id."""
        claims = self.decode(token)
        user_id = claims.get(USER_ID_CLAIM)
        if isinstance(user_id, bool) or not isinstance(user_id, (int, float, str)):
            raise AuthenticationError("Token has no user_id claim")
        try:
            return int(user_id)
        except ValueError as exc:
            raise AuthenticationError("Token has an invalid user_id claim") from exc
