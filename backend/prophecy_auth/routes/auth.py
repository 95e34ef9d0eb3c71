from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .. import passwords
from ..access import ValidatedSession, require_user
from ..db import get_db
from ..events import USER_CREATED, broadcaster
from ..models import User
from ..schemas import (
    ChangePasswordRequest,
    LoginOptionsRequest,
    LoginVerifyRequest,
    PasswordLoginRequest,
    RegisterOptionsRequest,
    RegisterPasswordRequest,
    RegisterVerifyRequest,
)
from ..security import clear_session_cookies, set_pending_cookie, set_session_cookie
from ..webauthn import WebAuthnCeremony, get_ceremony

router = APIRouter(prefix="/api/auth", tags=["auth"])

def _registered(response: Response, user: User) -> dict:
    broadcaster.broadcast(USER_CREATED, user.summary())
    # Not signed in yet, but remember who registered for the waiting page
    set_pending_cookie(response, user.id)
    return {
        "success": True,
        "user": {
            "id": user.id,
            "username": user.username,
            "displayName": user.display_name,
            "status": user.status.value,
        },
    }

def _signed_in(response: Response, user: User) -> dict:
    set_session_cookie(response, user)
    return {
        "success": True,
        "user": {
            "id": user.id,
            "username": user.username,
            "displayName": user.display_name,
            "role": user.role.value,
        },
        "forcePasswordChange": user.force_password_change,
    }

# ---------- Registration ----------
@router.post("/register/options")
def register_options(
    body: RegisterOptionsRequest,
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    return ceremony.registration_options(db, body.username, body.displayName)

@router.post("/register/verify")
def register_verify(
    body: RegisterVerifyRequest,
    response: Response,
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    user = ceremony.registration_verify(db, body.credential, body.tempUserId, body.username, body.displayName)
    return _registered(response, user)

@router.post("/register/password")
def register_password(body: RegisterPasswordRequest, response: Response, db: Session = Depends(get_db)):
    user = passwords.register(db, body.username, body.password, body.displayName)
    return _registered(response, user)

# ---------- Login ----------
@router.post("/login/options")
def login_options(
    body: Optional[LoginOptionsRequest] = None,
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    return ceremony.login_options(db, body.username if body else None)

@router.post("/login/verify")
def login_verify(
    body: LoginVerifyRequest,
    response: Response,
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    user = ceremony.login_verify(db, body.credential, body.challengeKey)
    return _signed_in(response, user)

@router.post("/login/password")
def login_password(body: PasswordLoginRequest, response: Response, db: Session = Depends(get_db)):
    user = passwords.login(db, body.username, body.password)
    return _signed_in(response, user)

@router.post("/logout")
def logout(response: Response):
    clear_session_cookies(response)
    return {"success": True}

# ---------- Current user ----------
@router.get("/me")
def me(session: ValidatedSession = Depends(require_user)):
    return {
        "userId": session.user_id,
        "username": session.username,
        "role": session.role.value,
        "status": session.status.value,
    }

@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    response: Response,
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
):
    user = passwords.change_password(db, session.user_id, body.currentPassword, body.newPassword)
    set_session_cookie(response, user)
    return {"success": True}
