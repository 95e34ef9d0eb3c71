import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from .models import Role, Status

_USERNAME_STRIP = re.compile(r"[^a-z0-9_-]")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8


def normalize_username(username: str) -> str:
    """Lowercase and drop everything outside ``[a-z0-9_-]``."""
    return _USERNAME_STRIP.sub("", username.lower())


# ---------- Registration ----------
class RegisterOptionsRequest(BaseModel):
    username: str = Field(min_length=1)
    displayName: Optional[str] = None

class RegisterVerifyRequest(BaseModel):
    credential: Dict[str, Any]
    tempUserId: str = Field(min_length=1)
    username: str = Field(min_length=1)
    displayName: Optional[str] = None

class RegisterPasswordRequest(BaseModel):
    username: str = Field(min_length=MIN_USERNAME_LENGTH)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    displayName: Optional[str] = None


# ---------- Login ----------
class LoginOptionsRequest(BaseModel):
    username: Optional[str] = None

class LoginVerifyRequest(BaseModel):
    credential: Dict[str, Any]
    challengeKey: str = Field(min_length=1)

class PasswordLoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


# ---------- Password management ----------
class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirmPassword: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.newPassword != self.confirmPassword:
            raise ValueError("passwords do not match")
        return self

class PasswordLoginToggle(BaseModel):
    enabled: bool


# ---------- Passkeys ----------
class PasskeyVerifyRequest(BaseModel):
    credential: Dict[str, Any]
    name: Optional[str] = Field(default=None, max_length=100)

class PasskeyRename(BaseModel):
    name: str = Field(min_length=1, max_length=100)


# ---------- Admin ----------
class AdminUserUpdate(BaseModel):
    role: Optional[Role] = None
    status: Optional[Status] = None
