import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import passwords
from ..access import ValidatedSession, require_user
from ..db import get_db
from ..errors import NotFoundError
from ..guards import check_remove_credential
from ..registry import get_owned_credential, get_user, list_credentials
from ..schemas import PasskeyRename, PasskeyVerifyRequest, PasswordLoginToggle
from ..webauthn import WebAuthnCeremony, get_ceremony

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/me", tags=["passkeys"])

# ---------- Passkeys ----------
@router.get("/passkeys")
def passkeys(session: ValidatedSession = Depends(require_user), db: Session = Depends(get_db)):
    return {"passkeys": [c.summary() for c in list_credentials(db, session.user_id)]}

@router.post("/passkeys/options")
def passkey_options(
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    return ceremony.passkey_options(db, session.user_id)

@router.post("/passkeys/verify")
def passkey_verify(
    body: PasskeyVerifyRequest,
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
    ceremony: WebAuthnCeremony = Depends(get_ceremony),
):
    cred = ceremony.passkey_verify(db, session.user_id, body.credential, body.name)
    return {"success": True, "passkey": cred.summary()}

@router.patch("/passkeys/{passkey_id}")
def rename_passkey(
    passkey_id: int,
    body: PasskeyRename,
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
):
    cred = get_owned_credential(db, session.user_id, passkey_id)
    if cred is None:
        raise NotFoundError("passkey not found")
    cred.name = body.name
    return {"success": True}

@router.delete("/passkeys/{passkey_id}")
def delete_passkey(
    passkey_id: int,
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
):
    cred = get_owned_credential(db, session.user_id, passkey_id)
    if cred is None:
        raise NotFoundError("passkey not found")
    check_remove_credential(db, session.user_id)
    db.delete(cred)
    logger.info("User %s deleted passkey %s", session.user_id, passkey_id)
    return {"success": True}

# ---------- Password login toggle ----------
@router.get("/password-login")
def password_login_status(session: ValidatedSession = Depends(require_user), db: Session = Depends(get_db)):
    user = get_user(db, session.user_id)
    has_passkeys = len(user.credentials) > 0
    return {
        "passwordLoginEnabled": user.password_hash is not None,
        "forcePasswordChange": user.force_password_change,
        "hasPasskeys": has_passkeys,
        "canDisablePasswordLogin": has_passkeys,
    }

@router.put("/password-login")
def toggle_password_login(
    body: PasswordLoginToggle,
    session: ValidatedSession = Depends(require_user),
    db: Session = Depends(get_db),
):
    if not body.enabled:
        passwords.disable_password(db, session.user_id)
        return {"success": True, "passwordLoginEnabled": False, "message": "password login disabled"}

    # Enabling means setting a password through change-password
    user = get_user(db, session.user_id)
    enabled = user.password_hash is not None
    return {
        "success": True,
        "passwordLoginEnabled": enabled,
        "message": "password login is already enabled" if enabled else "set a password via change password",
    }
