"""Session cookie issuing and reading.

The session identifies a subject only. ``role`` and ``username`` in the token
are advisory; access checks re-read the user record (see ``access.py``).
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Request, Response

from .config import settings

logger = logging.getLogger(__name__)

ALGO = "HS256"
SESSION_COOKIE = "session"
PENDING_COOKIE = "pendingUser"

@dataclass(frozen=True)
class SessionData:
    user_id: int
    username: str
    role: str
    issued_at: int

def issue_token(user_id: int, username: str, role: str, ttl_seconds: Optional[int] = None) -> str:
    now = int(time.time())
    ttl = ttl_seconds if ttl_seconds is not None else settings.SESSION_MAX_AGE
    payload = {"userId": user_id, "username": username, "role": role, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)

def decode_token(token: Optional[str]) -> Optional[SessionData]:
    """Malformed, tampered and expired tokens all read as no session."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGO])
        return SessionData(
            user_id=int(claims["userId"]),
            username=str(claims["username"]),
            role=str(claims["role"]),
            issued_at=int(claims["iat"]),
        )
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        logger.debug("Ignoring unreadable session cookie")
        return None

def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )

def set_session_cookie(response: Response, user) -> str:
    token = issue_token(user.id, user.username, user.role.value)
    _set_cookie(response, SESSION_COOKIE, token, settings.SESSION_MAX_AGE)
    return token

def set_pending_cookie(response: Response, user_id: int) -> None:
    _set_cookie(response, PENDING_COOKIE, str(user_id), settings.PENDING_COOKIE_MAX_AGE)

def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(PENDING_COOKIE, path="/")

def read_session(request: Request) -> Optional[SessionData]:
    return decode_token(request.cookies.get(SESSION_COOKIE))
