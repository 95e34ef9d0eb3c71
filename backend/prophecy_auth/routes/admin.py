import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import passwords
from ..access import ValidatedSession, require_admin
from ..db import get_db
from ..events import USER_DELETED, USER_UPDATED, broadcaster
from ..guards import check_admin_delete, check_admin_update
from ..models import User
from ..schemas import AdminUserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin"])

@router.get("")
def list_users(admin: ValidatedSession = Depends(require_admin), db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return {"users": [u.summary() for u in users]}

@router.put("/{user_id}")
def update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: ValidatedSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = check_admin_update(db, admin.user_id, user_id, role=body.role, status=body.status)
    if body.status is not None:
        user.status = body.status
    if body.role is not None:
        user.role = body.role
    db.flush()
    logger.info("Admin %s updated user %s (role=%s, status=%s)", admin.user_id, user_id, body.role, body.status)
    broadcaster.broadcast(USER_UPDATED, user.summary())
    return {"user": user.summary()}

@router.delete("/{user_id}")
def delete_user(user_id: int, admin: ValidatedSession = Depends(require_admin), db: Session = Depends(get_db)):
    user = check_admin_delete(db, admin.user_id, user_id)
    db.delete(user)
    db.flush()
    logger.info("Admin %s deleted user %s", admin.user_id, user_id)
    broadcaster.broadcast(USER_DELETED, {"id": user_id})
    return {"success": True}

@router.post("/{user_id}/reset-password")
def reset_password(user_id: int, admin: ValidatedSession = Depends(require_admin), db: Session = Depends(get_db)):
    user, new_password = passwords.reset_password(db, user_id)
    logger.info("Admin %s reset the password of user %s", admin.user_id, user_id)
    return {
        "success": True,
        "newPassword": new_password,
        "message": f"New password set for {user.username}; it must be changed at next login.",
    }
