import logging
from typing import List, Optional

import cbor2
from fido2.cose import CoseKey
from fido2.webauthn import Aaguid, AttestedCredentialData, AuthenticatorData, PublicKeyCredentialDescriptor
from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, USERNAME_TAKEN
from .models import Credential, Role, Status, User
from .schemas import normalize_username

logger = logging.getLogger(__name__)

# ---------- Users ----------
def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)

def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == normalize_username(username)).one_or_none()

def admin_ids_query(lock: bool = False) -> Select:
    stmt = select(User.id).where(User.role == Role.ADMIN)
    # Aggregates cannot take FOR UPDATE, so lock the rows themselves
    return stmt.with_for_update() if lock else stmt

def count_admins(db: Session, lock: bool = False) -> int:
    """Number of admins. With ``lock`` the admin rows stay locked until the transaction ends."""
    return len(db.scalars(admin_ids_query(lock)).all())

def create_user(
    db: Session,
    username: str,
    display_name: Optional[str] = None,
    password_hash: Optional[str] = None,
    role: Role = Role.USER,
    status: Status = Status.PENDING,
) -> User:
    """Insert a user. The unique index is the last word on duplicate usernames."""
    user = User(
        username=normalize_username(username),
        display_name=display_name or username,
        password_hash=password_hash,
        role=role,
        status=status,
    )
    try:
        db.add(user)
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("Username %r taken at insert time", user.username)
        raise ConflictError(USERNAME_TAKEN)
    return user

# ---------- Credentials ----------
def get_credential(db: Session, credential_id: bytes) -> Optional[Credential]:
    return db.query(Credential).filter(Credential.credential_id == credential_id).one_or_none()

def get_owned_credential(db: Session, user_id: int, pk: int) -> Optional[Credential]:
    return db.query(Credential).filter(Credential.id == pk, Credential.user_id == user_id).one_or_none()

def list_credentials(db: Session, user_id: int) -> List[Credential]:
    return (
        db.query(Credential)
        .filter(Credential.user_id == user_id)
        .order_by(Credential.created_at.desc(), Credential.id.desc())
        .all()
    )

def count_credentials(db: Session, user_id: int) -> int:
    return db.scalar(select(func.count()).select_from(Credential).where(Credential.user_id == user_id))

def add_credential(
    db: Session,
    user: User,
    auth_data: AuthenticatorData,
    transports: Optional[List[str]] = None,
    name: Optional[str] = None,
) -> Credential:
    """Persist the credential from a verified registration."""
    credential_data = auth_data.credential_data
    cred = Credential(
        credential_id=credential_data.credential_id,
        # COSE public key -> CBOR bytes for storage
        public_key=cbor2.dumps(dict(credential_data.public_key)),
        sign_count=auth_data.counter,
        aaguid=str(credential_data.aaguid),
        device_type="multiDevice" if auth_data.is_backup_eligible() else "singleDevice",
        backed_up=auth_data.is_backed_up(),
        transports=",".join(transports or []) or None,
        name=name,
    )
    try:
        user.credentials.append(cred)
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("passkey already registered")
    return cred

def descriptor(cred: Credential) -> PublicKeyCredentialDescriptor:
    # For register/authenticate *begin* (exclude/allow lists)
    return PublicKeyCredentialDescriptor(type="public-key", id=cred.credential_id)

def attested(cred: Credential) -> AttestedCredentialData:
    """Rebuild AttestedCredentialData from the stored COSE key for verification."""
    cose_key = CoseKey.parse(cbor2.loads(cred.public_key))
    aaguid = Aaguid.parse(cred.aaguid) if cred.aaguid else Aaguid.NONE
    return AttestedCredentialData.create(aaguid=aaguid, credential_id=cred.credential_id, public_key=cose_key)
