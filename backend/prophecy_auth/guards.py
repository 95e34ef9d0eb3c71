"""Cross-factor and admin-protection rules.

An account must keep at least one way to sign in, and the system must keep at
least one admin. Admins cannot suspend, re-role or delete themselves.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .errors import AuthorizationError, NotFoundError
from .models import Role, Status, User
from .registry import count_admins, count_credentials, get_user

logger = logging.getLogger(__name__)

LAST_PASSKEY = "cannot delete last passkey without password set"
PASSKEY_REQUIRED = "at least one passkey is required to disable password login"
SELF_SUSPEND = "you cannot suspend yourself"
SELF_ROLE = "you cannot change your own role"
SELF_DELETE = "you cannot delete yourself"
LAST_ADMIN_DEMOTE = "the last admin cannot be demoted"
LAST_ADMIN_DELETE = "the last admin cannot be deleted"


def _violation(message: str) -> AuthorizationError:
    return AuthorizationError(message, status_code=400)


def can_remove_credential(db: Session, user_id: int) -> bool:
    user = get_user(db, user_id)
    password_hash = user.password_hash if user is not None else None
    return not (count_credentials(db, user_id) == 1 and password_hash is None)

def can_disable_password(db: Session, user_id: int) -> bool:
    return count_credentials(db, user_id) > 0

def can_modify_admin(db: Session, target_id: int, new_role: Optional[Role] = None) -> bool:
    """False when the change would remove the last admin.

    ``new_role=None`` means the target is being deleted.
    """
    target = get_user(db, target_id)
    if target is None or target.role != Role.ADMIN:
        return True
    if new_role == Role.ADMIN:
        return True
    # Two admins demoting each other must not both see a count of two
    return count_admins(db, lock=True) > 1


def check_remove_credential(db: Session, user_id: int) -> None:
    if not can_remove_credential(db, user_id):
        logger.info("Refused to delete last passkey of user %s", user_id)
        raise _violation(LAST_PASSKEY)

def check_disable_password(db: Session, user_id: int) -> None:
    if not can_disable_password(db, user_id):
        raise _violation(PASSKEY_REQUIRED)

def check_admin_update(
    db: Session, actor_id: int, target_id: int, role: Optional[Role] = None, status: Optional[Status] = None
) -> User:
    if actor_id == target_id:
        if status == Status.SUSPENDED:
            raise _violation(SELF_SUSPEND)
        if role is not None and role != Role.ADMIN:
            raise _violation(SELF_ROLE)
    target = get_user(db, target_id)
    if target is None:
        raise NotFoundError("user not found")
    if role is not None and role != Role.ADMIN and not can_modify_admin(db, target_id, role):
        logger.warning("Refused to demote last admin %s", target_id)
        raise _violation(LAST_ADMIN_DEMOTE)
    return target

def check_admin_delete(db: Session, actor_id: int, target_id: int) -> User:
    if actor_id == target_id:
        raise _violation(SELF_DELETE)
    target = get_user(db, target_id)
    if target is None:
        raise NotFoundError("user not found")
    if not can_modify_admin(db, target_id):
        logger.warning("Refused to delete last admin %s", target_id)
        raise _violation(LAST_ADMIN_DELETE)
    return target
