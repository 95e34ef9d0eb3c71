import logging
from typing import Optional

from sqlalchemy.orm import Session

from .config import settings
from .models import Role, Status, User
from .passwords import hash_password
from .registry import create_user, get_user_by_username

logger = logging.getLogger(__name__)

ADMIN_USERNAME = "admin"

def ensure_admin_exists(db: Session, password: Optional[str] = None) -> Optional[User]:
    """Create the bootstrap admin from ADMIN_PW unless an ``admin`` user already exists."""
    password = password if password is not None else settings.ADMIN_PW
    if not password:
        logger.warning("ADMIN_PW not set, no admin user created")
        return None

    existing = get_user_by_username(db, ADMIN_USERNAME)
    if existing is not None:
        return existing

    user = create_user(
        db,
        ADMIN_USERNAME,
        display_name="Administrator",
        password_hash=hash_password(password),
        role=Role.ADMIN,
        status=Status.APPROVED,
    )
    logger.info("Admin user created (username: %s)", ADMIN_USERNAME)
    return user
