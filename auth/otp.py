"""
auth/otp.py -- One-time codes for email verification and password reset.

Codes: secrets.randbelow(10**6), zero-padded to six digits, so every value in
000000-999999 is equally likely. Collisions are not checked.

Storage: only HMAC-SHA256(OTP_SECRET_KEY, user_id:purpose:code) is persisted.
Someone who reads the otp_codes table cannot recover live codes without the
key. Binding user_id and purpose into the MAC input keeps a code scoped to
the account and purpose it was issued for.

Issuing a new code invalidates any earlier unused code of the same purpose
for that user, so at most one code per (user, purpose) is live.

verify() is check-then-mark: the newest unused matching row is looked up,
then marked used with a conditional UPDATE. Only the request whose UPDATE
flips the row succeeds; a concurrent duplicate sees INVALID.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from auth.models import OtpCode
from auth.store import UserStore, to_iso

logger = logging.getLogger("planit.auth")

OTP_DIGITS = 6


class OtpStatus(str, Enum):
    valid = "valid"
    invalid = "invalid"
    expired = "expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPManager:
    """Issue and verify purpose-scoped one-time codes.

    Args:
        store:          Persistence for otp_codes rows.
        secret_key:     HMAC key for code hashes.
        expire_minutes: Lifetime of an issued code.
        now:            Clock, injectable so tests can step past expiry.
    """

    def __init__(
        self,
        store: UserStore,
        secret_key: str,
        expire_minutes: int = 10,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._key = secret_key.encode("utf-8")
        self.expire_minutes = expire_minutes
        self._now = now

    def _hash(self, user_id: str, code: str, purpose: str) -> str:
        message = f"{user_id}:{purpose}:{code}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def issue(self, user_id: str, purpose: str) -> str:
        """Create and persist a fresh code; return it for delivery."""
        code = f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"
        created = self._now()
        superseded = self._store.invalidate_otps(user_id, purpose)
        self._store.create_otp(
            OtpCode(
                user_id=user_id,
                code_hash=self._hash(user_id, code, purpose),
                purpose=purpose,
                created_at=to_iso(created),
                expires_at=to_iso(created + timedelta(minutes=self.expire_minutes)),
            )
        )
        logger.info("otp issued user=%s purpose=%s superseded=%d", user_id, purpose, superseded)
        return code

    def verify(self, user_id: str, code: str, purpose: str) -> OtpStatus:
        """Check a submitted code. Marks it used on success.

        Fails closed: a code of the wrong length or with non-digits is INVALID
        without touching the store.
        """
        if len(code) != OTP_DIGITS or not code.isdigit():
            return OtpStatus.invalid

        record = self._store.latest_unused_otp(user_id, self._hash(user_id, code, purpose), purpose)
        if record is None:
            return OtpStatus.invalid
        if datetime.fromisoformat(record.expires_at) <= self._now():
            return OtpStatus.expired
        if not self._store.mark_otp_used(record.id):
            # Another request consumed the same row between our read and update.
            logger.warning("otp race lost user=%s purpose=%s", user_id, purpose)
            return OtpStatus.invalid
        return OtpStatus.valid
