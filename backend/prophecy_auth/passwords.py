"""Password factor: hashing, password login/registration, change and reset."""
import logging
import secrets
from typing import Optional, Tuple

import bcrypt
from sqlalchemy.orm import Session

from .config import settings
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    INVALID_CREDENTIALS,
    NOT_APPROVED,
    NotFoundError,
    SUSPENDED,
    USERNAME_TAKEN,
    ValidationError,
)
from .guards import check_disable_password
from .models import Status, User
from .registry import create_user, get_user, get_user_by_username
from .schemas import MIN_USERNAME_LENGTH, normalize_username

logger = logging.getLogger(__name__)

RESET_PASSWORD_LENGTH = 12
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise ValidationError("password is too long")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")

def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False

def generate_random_password() -> str:
    # 9 random bytes -> 12 base64url characters, never '+', '/' or '='
    return secrets.token_urlsafe(9)[:RESET_PASSWORD_LENGTH]


def login(db: Session, username: str, password: str) -> User:
    user = get_user_by_username(db, username)
    if user is None:
        raise AuthenticationError(INVALID_CREDENTIALS)

    # The caller already knows whether their own account has a password
    if user.password_hash is None:
        raise ValidationError("no password set, please sign in with a passkey")

    if not verify_password(password, user.password_hash):
        logger.info("Password mismatch for user %s", user.id)
        raise AuthenticationError(INVALID_CREDENTIALS)

    if user.status != Status.APPROVED:
        if user.status == Status.PENDING:
            raise AuthorizationError(NOT_APPROVED)
        raise AuthorizationError(SUSPENDED)

    return user

def register(db: Session, username: str, password: str, display_name: Optional[str] = None) -> User:
    normalized = normalize_username(username)
    if len(normalized) < MIN_USERNAME_LENGTH:
        raise ValidationError("username must be at least 3 characters")
    if get_user_by_username(db, normalized) is not None:
        raise ConflictError(USERNAME_TAKEN)

    user = create_user(db, normalized, display_name=display_name or username, password_hash=hash_password(password))
    logger.info("Registered user %s (%s) with password", user.id, user.username)
    return user

def change_password(db: Session, user_id: int, current_password: Optional[str], new_password: str) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("user not found")

    # Admin resets and first-time passwords skip the current-password check
    if not user.force_password_change and user.password_hash is not None:
        if not current_password:
            raise ValidationError("current password is required")
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("current password is incorrect")

    user.password_hash = hash_password(new_password)
    user.force_password_change = False
    db.flush()
    return user

def disable_password(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("user not found")
    check_disable_password(db, user_id)
    user.password_hash = None
    db.flush()
    logger.info("Password login disabled for user %s", user_id)
    return user

def reset_password(db: Session, user_id: int) -> Tuple[User, str]:
    """Set a random password and return it. It is not stored anywhere in plain text."""
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("user not found")
    new_password = generate_random_password()
    user.password_hash = hash_password(new_password)
    user.force_password_change = True
    db.flush()
    return user, new_password
