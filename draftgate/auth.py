"""Resolve the calling actor from an upstream-issued bearer token."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from draftgate.config import Settings, get_settings

ACCESS_TOKEN_EXPIRE_MINUTES = 15

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    actor_id: str
    actor_role: str


def create_access_token(
    actor_id: str,
    role: str,
    settings: Optional[Settings] = None,
    *,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    """Issue a signed token carrying ``sub`` and ``role`` claims."""

    settings = settings or get_settings()
    if not settings.jwt_secret:
        raise RuntimeError("Cannot issue tokens without a JWT signing secret")
    payload: Dict[str, Any] = {
        "sub": actor_id,
        "role": role,
        "exp": int(time.time()) + expires_minutes * 60,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> AuthContext:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token verification is not configured",
        )
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    actor_id = data.get("sub")
    role = data.get("role")
    if not isinstance(actor_id, str) or not actor_id or not isinstance(role, str) or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing subject or role",
        )
    return AuthContext(actor_id=actor_id, actor_role=role.lower())


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    """FastAPI dependency returning the verified caller."""

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return decode_token(credentials.credentials, settings)


def require_decision_role(
    auth: AuthContext = Depends(get_auth_context),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    """Allow only roles that may review drafts."""

    if not settings.is_decision_role(auth.actor_role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient privileges",
        )
    return auth


__all__ = [
    "AuthContext",
    "create_access_token",
    "decode_token",
    "get_auth_context",
    "require_decision_role",
]
