"""
auth/tokens.py -- JWT access/refresh issuance, persistence, rotation, revocation.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       distinct keys (Settings enforces they differ), so leaking one does not
       let an attacker forge the other. Each token also carries a "type"
       claim and verification rejects a token of the wrong type even if it
       somehow verified under the other key.

  Refresh tokens carry a random jti. Two pairs issued to the same user in the
  same second are therefore distinct strings, and the store can key records
  on the token string alone.

  Verification failures of every kind (bad signature, expired, malformed,
  wrong type, missing claims) raise the same AuthenticationError message.
  Callers never see which check failed.

  Rotation: /refresh deletes the presented token's record *before* issuing a
  new pair. The DELETE's affected-row count is the compare-and-swap -- when
  two requests present the same token concurrently, exactly one of them
  removes the row and proceeds; the other gets 401. A replay after a
  successful exchange finds no record and also gets 401.

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import AuthenticationError
from auth.models import RefreshToken, TokenPair, User
from auth.store import UserStore, to_iso

logger = logging.getLogger("planit.auth")

_ALGORITHM = "HS256"

INVALID_TOKEN = "Invalid or expired token"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Issue and validate access/refresh token pairs.

    Args:
        store:                 Persistence for refresh_tokens rows.
        access_secret_key:     HS256 key for access tokens.
        refresh_secret_key:    HS256 key for refresh tokens (must differ).
        access_expire_seconds: Access token lifetime (default 15 min).
        refresh_expire_days:   Refresh token lifetime and stored-record expiry.
        now:                   Clock for stored-record expiry, injectable for tests.
    """

    def __init__(
        self,
        store: UserStore,
        access_secret_key: str,
        refresh_secret_key: str,
        access_expire_seconds: int = 900,
        refresh_expire_days: int = 30,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._access_key = access_secret_key
        self._refresh_key = refresh_secret_key
        self.access_expire_seconds = access_expire_seconds
        self.refresh_expire_days = refresh_expire_days
        self._now = now

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def create_access_token(self, user: User, expire_seconds: int = 0) -> str:
        """Encode a signed access JWT embedding {sub, email, role}.

        expire_seconds overrides the configured lifetime when non-zero;
        a negative value yields an already-expired token (tests use this).
        """
        duration = expire_seconds if expire_seconds != 0 else self.access_expire_seconds
        issued = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "type": "access",
            "iat": issued,
            "exp": issued + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._access_key, algorithm=_ALGORITHM)

    def create_refresh_token(self, user: User) -> str:
        issued = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "type": "refresh",
            "jti": secrets.token_hex(16),
            "iat": issued,
            "exp": issued + timedelta(days=self.refresh_expire_days),
        }
        return jwt.encode(payload, self._refresh_key, algorithm=_ALGORITHM)

    def issue_pair(self, user: User) -> TokenPair:
        """Create an access+refresh pair and persist the refresh token."""
        pair = TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=self.create_refresh_token(user),
        )
        created = self._now()
        self._store.store_refresh_token(
            RefreshToken(
                user_id=user.id,
                token=pair.refresh_token,
                created_at=to_iso(created),
                expires_at=to_iso(created + timedelta(days=self.refresh_expire_days)),
            )
        )
        return pair

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def _decode(self, token: str, key: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(token, key, algorithms=[_ALGORITHM])
        except JOSEError as exc:
            raise AuthenticationError(INVALID_TOKEN) from exc
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise AuthenticationError(INVALID_TOKEN)
        return payload

    def verify_access_token(self, token: str) -> dict:
        """Return the access token's claims. Raises AuthenticationError on any failure."""
        return self._decode(token, self._access_key, "access")

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, self._refresh_key, "refresh")

    # ------------------------------------------------------------------
    # Server-side refresh token state
    # ------------------------------------------------------------------

    def _record_live(self, token: str, user_id: str) -> bool:
        record = self._store.get_refresh_token(token)
        if record is None or record.user_id != user_id:
            return False
        return datetime.fromisoformat(record.expires_at) > self._now()

    def is_valid(self, token: str) -> bool:
        """True iff the signature verifies, the JWT is unexpired, and a live stored record exists."""
        try:
            claims = self.verify_refresh_token(token)
        except AuthenticationError:
            return False
        return self._record_live(token, claims["sub"])

    def rotate(self, token: str) -> tuple[User, TokenPair]:
        """Exchange a refresh token for a brand-new pair, consuming the old one.

        Raises AuthenticationError if the token does not verify, has no live
        record, lost the race to a concurrent exchange, or belongs to a user
        who no longer exists or is deactivated.
        """
        try:
            claims = self.verify_refresh_token(token)
        except AuthenticationError as exc:
            raise AuthenticationError(INVALID_REFRESH_TOKEN) from exc
        user_id = claims["sub"]

        if not self._record_live(token, user_id):
            logger.warning("refresh rejected: no live record user=%s", user_id)
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        if self._store.delete_refresh_token(token) == 0:
            logger.warning("refresh rejected: token consumed concurrently user=%s", user_id)
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        user = self._store.get_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        return user, self.issue_pair(user)

    def revoke(self, token: str) -> int:
        """Delete the stored record(s) for a token. Idempotent; returns rows removed."""
        return self._store.delete_refresh_token(token)

    def revoke_all(self, user_id: str) -> int:
        """Delete every stored refresh token for a user (logout everywhere)."""
        removed = self._store.delete_user_refresh_tokens(user_id)
        logger.info("revoked all refresh tokens user=%s count=%d", user_id, removed)
        return removed
