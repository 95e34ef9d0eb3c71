"""Tiered access checks.

Decoding the cookie only tells us *who* is calling. Role and status are
always read from the user record so that approvals, suspensions and role
changes apply on the next request.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .db import get_db
from .errors import AuthenticationError, AuthorizationError, NOT_APPROVED, SUSPENDED
from .models import Role, Status
from .registry import get_user
from .security import SessionData, read_session


class Tier(enum.IntEnum):
    AUTHENTICATED = 1
    APPROVED = 2
    ADMIN = 3


@dataclass(frozen=True)
class ValidatedSession:
    user_id: int
    username: str
    role: Role
    status: Status

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def validate_session(db: Session, session: Optional[SessionData], tier: Tier) -> ValidatedSession:
    if session is None:
        raise AuthenticationError("unauthorized")

    user = get_user(db, session.user_id)
    if user is None:
        raise AuthenticationError("user not found")

    if tier >= Tier.APPROVED and user.status != Status.APPROVED:
        if user.status == Status.SUSPENDED:
            raise AuthorizationError(SUSPENDED)
        raise AuthorizationError(NOT_APPROVED)

    if tier >= Tier.ADMIN and user.role != Role.ADMIN:
        raise AuthorizationError("forbidden")

    return ValidatedSession(user_id=user.id, username=user.username, role=user.role, status=user.status)


def require_user(request: Request, db: Session = Depends(get_db)) -> ValidatedSession:
    return validate_session(db, read_session(request), Tier.AUTHENTICATED)

def require_approved(request: Request, db: Session = Depends(get_db)) -> ValidatedSession:
    return validate_session(db, read_session(request), Tier.APPROVED)

def require_admin(request: Request, db: Session = Depends(get_db)) -> ValidatedSession:
    return validate_session(db, read_session(request), Tier.ADMIN)
