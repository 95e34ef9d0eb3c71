import re

import pytest
from pydantic import ValidationError

from prophecy_auth.schemas import ChangePasswordRequest, normalize_username

USERNAMES = [
    "Alice",
    "bob_the-builder",
    "  Spaced Out  ",
    "ÜberUser",
    "a.b@c!d",
    "UPPER123",
    "",
    "---",
    "émile",
]


@pytest.mark.parametrize("username", USERNAMES)
def test_normalize_yields_allowed_characters(username):
    assert re.fullmatch(r"[a-z0-9_-]*", normalize_username(username))


@pytest.mark.parametrize("username", USERNAMES)
def test_normalize_is_idempotent(username):
    once = normalize_username(username)
    assert normalize_username(once) == once


def test_normalize_examples():
    assert normalize_username("Alice") == "alice"
    assert normalize_username("a.b@c!d") == "abcd"
    assert normalize_username("Bob_The-Builder") == "bob_the-builder"


def test_differently_written_names_collide():
    assert normalize_username("Alice!") == normalize_username("ALICE")


def test_change_password_requires_matching_confirmation():
    with pytest.raises(ValidationError, match="passwords do not match"):
        ChangePasswordRequest(newPassword="longenough", confirmPassword="different1")


def test_change_password_minimum_length():
    with pytest.raises(ValidationError):
        ChangePasswordRequest(newPassword="short", confirmPassword="short")
