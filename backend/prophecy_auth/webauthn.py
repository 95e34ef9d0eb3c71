"""WebAuthn registration, login and add-passkey ceremonies.

Each ceremony is two requests: *options* creates a challenge and parks the
fido2 state in the ChallengeStore, *verify* reads it back, checks the
authenticator response and consumes the challenge. Nothing is locked between
the two steps, so anything checked in *options* that another request could
change (username availability) is checked again in *verify*.
"""
import datetime
import enum
import logging
import secrets
from typing import Any, Dict, Mapping, Optional

import cbor2
from fastapi import Depends
from fido2.cose import ES256, RS256
from fido2.server import Fido2Server
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    AuthenticationResponse,
    AuthenticatorData,
    PublicKeyCredentialParameters,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialType,
    PublicKeyCredentialUserEntity,
    RegistrationResponse,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)
from sqlalchemy.orm import Session

from .challenge_store import ChallengeStore, get_challenge_store
from .config import settings
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NOT_APPROVED,
    NotFoundError,
    SUSPENDED,
    USERNAME_TAKEN,
    ValidationError,
)
from .models import Credential, Status, User
from .registry import (
    add_credential,
    attested,
    count_credentials,
    create_user,
    descriptor,
    get_credential,
    get_user,
    get_user_by_username,
)
from .schemas import MIN_USERNAME_LENGTH, normalize_username

logger = logging.getLogger(__name__)

TIMEOUT_MS = 60000
FIRST_PASSKEY_NAME = "My passkey"

REGISTRATION_EXPIRED = "registration expired, please try again"
LOGIN_EXPIRED = "login expired, please try again"
VERIFICATION_FAILED = "passkey verification failed"


def build_server() -> Fido2Server:
    rp = PublicKeyCredentialRpEntity(id=settings.RP_ID, name=settings.RP_NAME)
    origins = set(settings.webauthn_origins_list)
    server = Fido2Server(rp, verify_origin=lambda origin: origin in origins)
    server.timeout = TIMEOUT_MS
    server.allowed_algorithms = [
        PublicKeyCredentialParameters(type=PublicKeyCredentialType.PUBLIC_KEY, alg=ES256.ALGORITHM),
        PublicKeyCredentialParameters(type=PublicKeyCredentialType.PUBLIC_KEY, alg=RS256.ALGORITHM),
    ]
    return server


# Store the state safely: CBOR-encode (handles bytes) then base64url
def _pack_state(state: Mapping[str, Any]) -> str:
    plain = {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in state.items()}
    return websafe_encode(cbor2.dumps(plain))

def _unpack_state(blob: str) -> dict:
    return cbor2.loads(websafe_decode(blob))


def _json_safe(value: Any) -> Any:
    """Options objects to plain JSON: bytes become base64url, enums their value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return websafe_encode(bytes(value))
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _json_safe(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _registration_response(credential: Mapping[str, Any]) -> RegistrationResponse:
    response = credential["response"]
    return RegistrationResponse.from_dict({
        "id": credential["id"],
        "rawId": credential.get("rawId") or credential["id"],
        "type": "public-key",
        "response": {
            "clientDataJSON": response["clientDataJSON"],
            "attestationObject": response["attestationObject"],
        },
        "clientExtensionResults": credential.get("clientExtensionResults") or {},
    })

def _authentication_response(credential: Mapping[str, Any]) -> AuthenticationResponse:
    response = credential["response"]
    body = {
        "clientDataJSON": response["clientDataJSON"],
        "authenticatorData": response["authenticatorData"],
        "signature": response["signature"],
    }
    if response.get("userHandle"):
        body["userHandle"] = response["userHandle"]
    return AuthenticationResponse.from_dict({
        "id": credential["id"],
        "rawId": credential.get("rawId") or credential["id"],
        "type": "public-key",
        "response": body,
        "clientExtensionResults": credential.get("clientExtensionResults") or {},
    })

def _transports(credential: Mapping[str, Any]) -> list:
    transports = (credential.get("response") or {}).get("transports") or []
    return [t for t in transports if isinstance(t, str)]

def _counter_advanced(stored: int, new: int) -> bool:
    # Authenticators without a counter report 0 forever
    if stored == 0 and new == 0:
        return True
    return new > stored

def _check_approved(user: User) -> None:
    if user.status == Status.APPROVED:
        return
    if user.status == Status.SUSPENDED:
        raise AuthorizationError(SUSPENDED)
    raise AuthorizationError(NOT_APPROVED)


class WebAuthnCeremony:
    def __init__(self, store: ChallengeStore, server: Optional[Fido2Server] = None):
        self.store = store
        self.server = server or build_server()

    # ---------- helpers ----------
    def _begin_registration(self, user_entity: PublicKeyCredentialUserEntity, exclude: list):
        return self.server.register_begin(
            user=user_entity,
            credentials=exclude,  # becomes excludeCredentials in options
            resident_key_requirement=ResidentKeyRequirement.PREFERRED,
            user_verification=UserVerificationRequirement.PREFERRED,
            authenticator_attachment=None,  # allow both platform/cross-platform
        )

    def _complete_registration(self, state: dict, credential: Mapping[str, Any], context: str) -> AuthenticatorData:
        try:
            return self.server.register_complete(state, _registration_response(credential))
        except Exception:
            logger.warning("Registration verification failed (%s)", context, exc_info=True)
            raise AuthenticationError(VERIFICATION_FAILED, status_code=400)

    def _complete_authentication(self, state: dict, cred: Credential, credential: Mapping[str, Any]) -> int:
        try:
            response = _authentication_response(credential)
            self.server.authenticate_complete(state, [attested(cred)], response)
        except Exception:
            logger.warning("Assertion verification failed for credential %s", cred.id, exc_info=True)
            raise AuthenticationError(VERIFICATION_FAILED, status_code=400)
        return response.response.authenticator_data.counter

    # ---------- Registration ----------
    def registration_options(self, db: Session, username: str, display_name: Optional[str] = None) -> Dict[str, Any]:
        normalized = normalize_username(username)
        if len(normalized) < MIN_USERNAME_LENGTH:
            raise ValidationError("username must be at least 3 characters")
        if get_user_by_username(db, normalized) is not None:
            raise ConflictError(USERNAME_TAKEN)

        display = display_name or username
        temp_user_id = f"temp_{normalized}_{secrets.token_hex(8)}"
        user_entity = PublicKeyCredentialUserEntity(
            id=secrets.token_bytes(32), name=normalized, display_name=display
        )
        # New account, so nothing to exclude
        options, state = self._begin_registration(user_entity, [])
        self.store.store(temp_user_id, _pack_state(state))

        return {"options": _json_safe(dict(options)), "tempUserId": temp_user_id, "username": normalized, "displayName": display}

    def registration_verify(
        self,
        db: Session,
        credential: Mapping[str, Any],
        temp_user_id: str,
        username: str,
        display_name: Optional[str] = None,
    ) -> User:
        packed = self.store.get(temp_user_id)
        if packed is None:
            raise AuthenticationError(REGISTRATION_EXPIRED, status_code=400)

        normalized = normalize_username(username)
        if not temp_user_id.startswith(f"temp_{normalized}_"):
            raise ValidationError("invalid request")

        auth_data = self._complete_registration(_unpack_state(packed), credential, temp_user_id)
        if not self.store.clear(temp_user_id):
            # Another verify already consumed this challenge
            raise AuthenticationError(REGISTRATION_EXPIRED, status_code=400)

        # Someone may have taken the name since the options step
        if get_user_by_username(db, normalized) is not None:
            logger.info("Username %r was taken during registration", normalized)
            raise ConflictError(USERNAME_TAKEN)

        user = create_user(db, normalized, display_name=display_name or username, status=Status.PENDING)
        add_credential(db, user, auth_data, _transports(credential), FIRST_PASSKEY_NAME)
        logger.info("Registered user %s (%s) with passkey", user.id, user.username)
        return user

    # ---------- Authentication ----------
    def login_options(self, db: Session, username: Optional[str] = None) -> Dict[str, Any]:
        user = None
        allow = None
        if username:
            user = get_user_by_username(db, username)
            if user is None:
                raise NotFoundError("user not found")
            _check_approved(user)
            if not user.credentials:
                raise ValidationError("no passkey registered for this user")
            allow = [descriptor(c) for c in user.credentials]

        request_options, state = self.server.authenticate_begin(
            credentials=allow,
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        # Discoverable credentials: the challenge itself is the key
        challenge_key = str(user.id) if user is not None else f"anon_{state['challenge']}"
        self.store.store(challenge_key, _pack_state(state))

        return {"options": _json_safe(dict(request_options)), "challengeKey": challenge_key}

    def login_verify(self, db: Session, credential: Mapping[str, Any], challenge_key: str) -> User:
        packed = self.store.get(challenge_key)
        if packed is None:
            raise AuthenticationError(LOGIN_EXPIRED, status_code=400)

        try:
            cred_id = websafe_decode(credential.get("rawId") or credential["id"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("invalid request")

        cred = get_credential(db, cred_id)
        if cred is None:
            raise NotFoundError("passkey not found")

        # A named challenge only admits that user's passkeys
        if not challenge_key.startswith("anon_") and challenge_key != str(cred.user_id):
            logger.warning("Credential %s presented for challenge of user %s", cred.id, challenge_key)
            raise AuthenticationError(VERIFICATION_FAILED, status_code=400)

        user = cred.user
        _check_approved(user)

        new_counter = self._complete_authentication(_unpack_state(packed), cred, credential)
        if not _counter_advanced(cred.sign_count, new_counter):
            logger.warning(
                "Signature counter did not advance for credential %s (stored %d, got %d)",
                cred.id, cred.sign_count, new_counter,
            )
            raise AuthenticationError(VERIFICATION_FAILED, status_code=400)

        if not self.store.clear(challenge_key):
            logger.warning("Challenge %s was consumed by a concurrent sign-in", challenge_key)
            raise AuthenticationError(LOGIN_EXPIRED, status_code=400)

        # Update sign counter and last used timestamp
        cred.sign_count = new_counter
        cred.last_used_at = datetime.datetime.now(datetime.timezone.utc)
        db.flush()
        logger.info("User %s signed in with passkey %s", user.id, cred.id)
        return user

    # ---------- Adding a passkey to an existing account ----------
    @staticmethod
    def passkey_key(user_id: int) -> str:
        return f"passkey_{user_id}"

    def passkey_options(self, db: Session, user_id: int) -> Dict[str, Any]:
        user = get_user(db, user_id)
        if user is None:
            raise NotFoundError("user not found")

        user_entity = PublicKeyCredentialUserEntity(
            id=str(user.id).encode(), name=user.username, display_name=user.display_name or user.username
        )
        # Exclude what the user already has so an authenticator is not registered twice
        options, state = self._begin_registration(user_entity, [descriptor(c) for c in user.credentials])
        self.store.store(self.passkey_key(user.id), _pack_state(state))
        return {"options": _json_safe(dict(options))}

    def passkey_verify(
        self, db: Session, user_id: int, credential: Mapping[str, Any], name: Optional[str] = None
    ) -> Credential:
        key = self.passkey_key(user_id)
        packed = self.store.get(key)
        if packed is None:
            raise AuthenticationError(REGISTRATION_EXPIRED, status_code=400)

        user = get_user(db, user_id)
        if user is None:
            raise NotFoundError("user not found")

        auth_data = self._complete_registration(_unpack_state(packed), credential, key)
        if not self.store.clear(key):
            raise AuthenticationError(REGISTRATION_EXPIRED, status_code=400)

        existing = count_credentials(db, user_id)
        cred = add_credential(db, user, auth_data, _transports(credential), name or f"Passkey {existing + 1}")
        logger.info("User %s added passkey %s", user_id, cred.id)
        return cred


_server: Optional[Fido2Server] = None

def get_ceremony(store: ChallengeStore = Depends(get_challenge_store)) -> WebAuthnCeremony:
    global _server
    if _server is None:
        _server = build_server()
    return WebAuthnCeremony(store, _server)
