from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings
from .errors import Unauthenticated


security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    user_id: UUID


class TokenValidator:
    """Resolves a bearer token to the user it was issued for."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def validate(self, token: str) -> UUID:
        if not token:
            raise Unauthenticated("missing_authorization")
        try:
            payload = jwt.decode(
                token,
                self.settings.secrets.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                options={"verify_aud": self.settings.jwt_audience is not None},
            )
        except jwt.PyJWTError as exc:
            raise Unauthenticated("invalid_token", detail=str(exc)) from exc

        subject = payload.get("sub") or payload.get("user_id")
        try:
            return UUID(str(subject))
        except ValueError as exc:
            raise Unauthenticated("invalid_token", detail="subject is not a user id") from exc


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    return credentials.credentials


async def get_auth_context(
    request: Request,
    token: str = Depends(get_bearer_token),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    try:
        user_id = TokenValidator(settings).validate(token)
    except Unauthenticated as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message) from exc

    context = AuthContext(user_id=user_id)
    request.state.auth = context
    return context


__all__ = ["AuthContext", "TokenValidator", "get_bearer_token", "get_auth_context"]
