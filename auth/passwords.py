"""
auth/passwords.py -- Password hashing and password policy.

Passwords: bcrypt used directly (no passlib wrapper). passlib's wrap-bug
detection builds a >72-byte password that bcrypt 4.x rejects, so direct usage
is simpler and actively maintained.

The _DUMMY_HASH constant enables timing equalization in login: bcrypt always
runs, whether or not the email exists, so response time does not reveal which
emails are registered.

Layer rule: no imports from api/ or notify/. core/ is allowed.
"""

from __future__ import annotations

import re

import bcrypt

from core.config import get_settings

_settings = get_settings()

_MIN_LENGTH = 8
# bcrypt only accepts 72 bytes of input; bcrypt 5 raises instead of truncating.
_MAX_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Callers run password_problems() first; it rejects anything over 72 bytes
    of UTF-8, which bcrypt refuses to hash.
    """
    salt = bcrypt.gensalt(rounds=max(_settings.bcrypt_rounds, 10))
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("planit_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison against the dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


def password_problems(plain: str) -> list[str]:
    """Return the policy violations for a candidate password (empty list = OK).

    Policy: at least 8 characters, at most 72 bytes of UTF-8, and one each of
    uppercase, lowercase and digit.
    """
    problems: list[str] = []
    if len(plain) < _MIN_LENGTH:
        problems.append(f"Password must be at least {_MIN_LENGTH} characters long")
    if len(plain.encode("utf-8")) > _MAX_BYTES:
        problems.append(f"Password must be at most {_MAX_BYTES} bytes long")
    if not (re.search(r"[a-z]", plain) and re.search(r"[A-Z]", plain) and re.search(r"\d", plain)):
        problems.append("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return problems
