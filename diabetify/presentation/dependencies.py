"""FastAPI dependencies shared by the controllers."""

from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from diabetify.domain.entities.errors import AuthenticationError
from diabetify.infrastructure.services.jwt_authenticator import JWTAuthenticator
from diabetify.main.container import AppContainer

bearer_scheme = HTTPBearer(auto_error=False)

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


@inject
async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    authenticator: JWTAuthenticator = Depends(
        Provide[AppContainer.jwt_authenticator]
    ),
) -> int:
    """Resolve the caller's user id from the ``Authorization: Bearer`` header."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
            headers=_UNAUTHORIZED_HEADERS,
        )
    try:
        return authenticator.authenticate(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers=_UNAUTHORIZED_HEADERS,
        ) from exc
