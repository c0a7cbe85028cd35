from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

from .config import ACCESS_COOKIE_NAME, ADMIN_ROLE, JWT_ACCESS_SECRET, JWT_ALGORITHM


class AuthUser(BaseModel):
    user_id: int | None = None
    role: str


def create_access_token(user_id: int | None, role: str, expires_minutes: int = 150) -> str:
    """Sign an access token the way the auth service issues them (operator scripts, tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_ACCESS_SECRET, algorithm=JWT_ALGORITHM)


def _token_from_request(request: Request) -> str | None:
    # Cookie first, Authorization header as fallback
    token = request.cookies.get(ACCESS_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("Authorization") or ""
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip() or None
    return None


def get_current_user(request: Request) -> AuthUser:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(token, JWT_ACCESS_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = payload.get("role") or payload.get("role_name")
    if not role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Role missing")
    return AuthUser(user_id=payload.get("userId"), role=str(role).upper())


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if user.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Forbidden: ADMIN only. (Current role: {user.role})",
        )
    return user
