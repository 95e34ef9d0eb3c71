import base64
import json
import time
from types import SimpleNamespace

import jwt
from fastapi import Response

from prophecy_auth.config import settings
from prophecy_auth.models import Role
from prophecy_auth.security import decode_token, issue_token, set_session_cookie


def _user(**overrides):
    fields = {"id": 7, "username": "alice", "role": Role.USER}
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_issued_token_round_trips():
    session = decode_token(issue_token(7, "alice", "USER"))
    assert session.user_id == 7
    assert session.username == "alice"
    assert session.role == "USER"
    assert abs(session.issued_at - time.time()) < 5


def test_missing_token_is_no_session():
    assert decode_token(None) is None
    assert decode_token("") is None


def test_garbage_token_is_no_session():
    assert decode_token("not-a-token") is None


def test_unsigned_payload_is_rejected():
    # The bare base64 JSON form must not be accepted as a session
    forged = base64.b64encode(json.dumps({"userId": 1, "username": "admin", "role": "ADMIN", "iat": 0}).encode())
    assert decode_token(forged.decode()) is None


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode({"userId": 1, "username": "admin", "role": "ADMIN", "iat": int(time.time())}, "other", algorithm="HS256")
    assert decode_token(token) is None


def test_expired_token_is_rejected():
    assert decode_token(issue_token(7, "alice", "USER", ttl_seconds=-10)) is None


def test_token_without_user_id_is_rejected():
    token = jwt.encode({"username": "alice", "role": "USER", "iat": int(time.time())}, settings.JWT_SECRET, algorithm="HS256")
    assert decode_token(token) is None


def test_session_cookie_attributes():
    response = Response()
    set_session_cookie(response, _user())
    cookie = response.headers["set-cookie"].lower()

    assert cookie.startswith("session=")
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert "max-age=604800" in cookie
    assert "path=/" in cookie
    assert "secure" not in cookie


def test_session_cookie_secure_in_production(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production")
    response = Response()
    set_session_cookie(response, _user())
    assert "secure" in response.headers["set-cookie"].lower()
