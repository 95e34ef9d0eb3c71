from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import ValidatedSession, require_approved
from ..db import get_db
from ..models import Status, User

router = APIRouter(prefix="/api/users", tags=["users"])

# Members list: admins see everyone, everybody else only approved players
@router.get("")
def list_members(session: ValidatedSession = Depends(require_approved), db: Session = Depends(get_db)):
    query = db.query(User)
    if not session.is_admin:
        query = query.filter(User.status == Status.APPROVED)
    users = query.order_by(User.display_name, User.id).all()
    return {"users": [u.summary() for u in users]}
