import pytest

from prophecy_auth.access import Tier, validate_session
from prophecy_auth.errors import AuthenticationError, AuthorizationError
from prophecy_auth.models import Role, Status, User
from prophecy_auth.security import SessionData


def add_user(db, role=Role.USER, status=Status.APPROVED):
    user = User(username="alice", role=role, status=status)
    db.add(user)
    db.flush()
    return user


def session_for(user, role="USER"):
    return SessionData(user_id=user.id, username=user.username, role=role, issued_at=0)


def test_no_session_is_401(db):
    with pytest.raises(AuthenticationError) as exc:
        validate_session(db, None, Tier.AUTHENTICATED)
    assert exc.value.status_code == 401


def test_session_for_deleted_user_is_401(db):
    ghost = SessionData(user_id=404, username="ghost", role="ADMIN", issued_at=0)
    with pytest.raises(AuthenticationError):
        validate_session(db, ghost, Tier.AUTHENTICATED)


def test_authenticated_tier_ignores_status(db):
    user = add_user(db, status=Status.PENDING)
    result = validate_session(db, session_for(user), Tier.AUTHENTICATED)
    assert result.status == Status.PENDING


def test_approved_tier_rejects_suspended_with_message(db):
    user = add_user(db, status=Status.SUSPENDED)
    with pytest.raises(AuthorizationError) as exc:
        validate_session(db, session_for(user), Tier.APPROVED)
    assert exc.value.status_code == 403
    assert exc.value.message == "account suspended"


def test_approved_tier_rejects_pending(db):
    user = add_user(db, status=Status.PENDING)
    with pytest.raises(AuthorizationError) as exc:
        validate_session(db, session_for(user), Tier.APPROVED)
    assert exc.value.message == "account not yet approved"


def test_admin_tier_uses_live_role_not_token_role(db):
    user = add_user(db, role=Role.USER)
    # Token claims ADMIN, record says USER
    with pytest.raises(AuthorizationError):
        validate_session(db, session_for(user, role="ADMIN"), Tier.ADMIN)


def test_promotion_applies_without_new_token(db):
    user = add_user(db, role=Role.USER)
    token_session = session_for(user, role="USER")
    user.role = Role.ADMIN
    db.flush()

    result = validate_session(db, token_session, Tier.ADMIN)
    assert result.role == Role.ADMIN
    assert result.is_admin


def test_suspended_admin_is_rejected(db):
    user = add_user(db, role=Role.ADMIN, status=Status.SUSPENDED)
    with pytest.raises(AuthorizationError):
        validate_session(db, session_for(user, role="ADMIN"), Tier.ADMIN)
