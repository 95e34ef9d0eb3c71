"""Shared fixtures: in-memory SQLite, isolated challenge store, software passkey."""
import hashlib
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RP_ID"] = "example.com"
os.environ["WEBAUTHN_ORIGIN"] = "https://example.com"
os.environ["ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["CHALLENGE_BACKEND"] = "memory"
os.environ["CHALLENGE_SWEEP_SECONDS"] = "0"
os.environ.pop("ADMIN_PW", None)

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from fido2.cose import ES256
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    AttestationObject,
    AttestedCredentialData,
    AuthenticatorData,
    CollectedClientData,
)

from prophecy_auth.challenge_store import MemoryChallengeStore, get_challenge_store
from prophecy_auth.db import Base, SessionLocal, engine, session_scope
from prophecy_auth.main import app
from prophecy_auth.models import Credential, Role, Status, User
from prophecy_auth.passwords import hash_password
from prophecy_auth.webauthn import WebAuthnCeremony, build_server

ORIGIN = "https://example.com"
RP_ID = "example.com"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SoftAuthenticator:
    """ES256 authenticator producing real attestation/assertion responses."""

    def __init__(self, origin: str = ORIGIN, rp_id: str = RP_ID):
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = os.urandom(32)
        self.rp_id_hash = hashlib.sha256(rp_id.encode()).digest()
        self.origin = origin
        self.counter = 0

    @property
    def id(self) -> str:
        return websafe_encode(self.credential_id)

    def create(self, options: dict) -> dict:
        challenge = websafe_decode(options["publicKey"]["challenge"])
        client_data = CollectedClientData.create(CollectedClientData.TYPE.CREATE, challenge, self.origin)
        public_key = ES256.from_cryptography_key(self.private_key.public_key())
        credential_data = AttestedCredentialData.create(bytes(16), self.credential_id, public_key)
        auth_data = AuthenticatorData.create(
            self.rp_id_hash,
            AuthenticatorData.FLAG.UP | AuthenticatorData.FLAG.AT,
            counter=self.counter,
            credential_data=credential_data,
        )
        attestation_object = AttestationObject.create("none", auth_data, {})
        return {
            "id": self.id,
            "rawId": self.id,
            "type": "public-key",
            "response": {
                "clientDataJSON": websafe_encode(bytes(client_data)),
                "attestationObject": websafe_encode(bytes(attestation_object)),
                "transports": ["internal"],
            },
            "clientExtensionResults": {},
        }

    def get(self, options: dict, counter: int | None = None) -> dict:
        if counter is None:
            self.counter += 1
            counter = self.counter
        challenge = websafe_decode(options["publicKey"]["challenge"])
        client_data = CollectedClientData.create(CollectedClientData.TYPE.GET, challenge, self.origin)
        auth_data = AuthenticatorData.create(self.rp_id_hash, AuthenticatorData.FLAG.UP, counter=counter)
        signature = self.private_key.sign(bytes(auth_data) + client_data.hash, ec.ECDSA(hashes.SHA256()))
        return {
            "id": self.id,
            "rawId": self.id,
            "type": "public-key",
            "response": {
                "clientDataJSON": websafe_encode(bytes(client_data)),
                "authenticatorData": websafe_encode(bytes(auth_data)),
                "signature": websafe_encode(signature),
            },
            "clientExtensionResults": {},
        }


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryChallengeStore(ttl_seconds=300, clock=clock)


@pytest.fixture
def ceremony(store):
    return WebAuthnCeremony(store, build_server())


@pytest.fixture
def authenticator():
    return SoftAuthenticator()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_challenge_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(
    username: str,
    password: str | None = None,
    role: Role = Role.USER,
    status: Status = Status.APPROVED,
    passkeys: int = 0,
    force_password_change: bool = False,
) -> int:
    """Commit a user (and placeholder passkeys) outside any test session."""
    with session_scope() as s:
        user = User(
            username=username,
            display_name=username.title(),
            password_hash=hash_password(password) if password else None,
            role=role,
            status=status,
            force_password_change=force_password_change,
        )
        for i in range(passkeys):
            user.credentials.append(
                Credential(
                    credential_id=os.urandom(16),
                    public_key=b"\xa0",
                    sign_count=0,
                    name=f"Passkey {i + 1}",
                )
            )
        s.add(user)
        s.flush()
        return user.id


def login_as(client: TestClient, username: str, password: str) -> None:
    resp = client.post("/api/auth/login/password", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
