"""Resolve the calling user from a Bearer JWT issued by the auth subsystem."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.config import get_settings
from app.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: UUID
    email: Optional[str] = None


def decode_access_token(token: Optional[str]) -> CurrentUser:
    """Tokens carry the user id as `id` (or `sub`); the id is trusted as-is."""
    if not token:
        raise AuthenticationError("Not authorized to access this route")
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        if not settings.is_production:
            logger.info("Token verification failed: %s", e)
        raise AuthenticationError("Token is not valid") from e
    raw_id = claims.get("id") or claims.get("sub")
    try:
        user_id = UUID(str(raw_id))
    except ValueError as e:
        raise AuthenticationError("Token is not valid") from e
    return CurrentUser(id=user_id, email=claims.get("email"))


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    return decode_access_token(credentials.credentials if credentials else None)
