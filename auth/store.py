"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository for users,
one-time codes, and refresh tokens; _row_to_* functions are the mappers.
The account service, OTP manager, and token manager never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Passwords are hashed here, inside create_user() / update_password(), so no
  caller can persist a plaintext password by accident.

  Single use of OTP codes and refresh tokens rests on the affected-row count
  of a conditional UPDATE / DELETE. The database applies each statement
  atomically, so when two requests race on the same row exactly one of them
  sees rowcount == 1. That is the compare-and-swap the managers build on.

DB URL: Settings.database_url (defaults to sqlite:///planit_auth.db).

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import OtpCode, RefreshToken, User, profile_from_dict, profile_to_dict
from auth.passwords import hash_password

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # always lower-cased
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(100), nullable=False),
    Column("role", String(20), nullable=False),
    Column("phone_number", String(32)),
    Column("profile_picture_url", Text),
    Column("profile", Text),  # JSON role payload
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_otp_codes = Table(
    "otp_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False),
    Column("code_hash", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("purpose", String(32), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("expires_at", String(40), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Index("ix_otp_codes_user_purpose", "user_id", "purpose"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("token", Text, nullable=False, unique=True),
    Column("created_at", String(40), nullable=False),
    Column("expires_at", String(40), nullable=False),
)

# Fields a profile update may touch. email, role, password_hash, is_active
# and email_verified each have their own dedicated method.
_UPDATABLE_FIELDS = {"full_name", "phone_number", "profile_picture_url", "profile"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed without blocking during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Fixed-width ISO-8601 UTC string, so stored timestamps compare lexically."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, OtpCode and RefreshToken records.

    Usage:
        store = UserStore("sqlite:///planit_auth.db")
        user_id = store.create_user(User(email="a@x.com", full_name="A B", role="planner"), "Abcdefg1")
        user = store.get_by_email("A@X.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str) -> str:
        """Hash the password, insert the user, and return the new id.

        Defaults: is_active=True, email_verified=False regardless of what the
        passed User carries. Raises ConflictError if the case-folded email is
        already registered -- callers check get_by_email() first, the UNIQUE
        index catches the race between two concurrent signups.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=normalize_email(user.email),
                        password_hash=hash_password(password),
                        full_name=user.full_name,
                        role=user.role,
                        phone_number=user.phone_number,
                        profile_picture_url=user.profile_picture_url,
                        profile=_dump_profile(user),
                        is_active=1,
                        email_verified=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("User with this email already exists") from exc
        return user_id

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, role: Optional[str] = None) -> list[User]:
        """Return users ordered by creation time, optionally filtered by role."""
        query = _users.select().order_by(_users.c.created_at)
        if role is not None:
            query = query.where(_users.c.role == role)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, **fields) -> bool:
        """Merge whitelisted profile fields into a user record.

        Accepted fields: full_name, phone_number, profile_picture_url, profile.
        Anything else (password_hash, role, email, ...) raises ValueError
        rather than being silently dropped.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable through update_user: {sorted(unknown)!r}")
        if "profile" in fields:
            profile = profile_to_dict(fields["profile"])
            fields["profile"] = json.dumps(profile) if profile is not None else None
        return self._update(user_id, **fields)

    def update_password(self, user_id: str, new_password: str) -> bool:
        return self._update(user_id, password_hash=hash_password(new_password))

    def set_email_verified(self, user_id: str) -> bool:
        return self._update(user_id, email_verified=1)

    def set_active(self, user_id: str, active: bool) -> bool:
        """Flip is_active. Operator action only -- no HTTP route calls this."""
        return self._update(user_id, is_active=1 if active else 0)

    def _update(self, user_id: str, **values) -> bool:
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    def create_otp(self, otp: OtpCode) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_codes.insert().values(
                    user_id=otp.user_id,
                    code_hash=otp.code_hash,
                    purpose=otp.purpose,
                    created_at=otp.created_at or _now_iso(),
                    expires_at=otp.expires_at,
                    used=0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def invalidate_otps(self, user_id: str, purpose: str) -> int:
        """Mark every unused code for (user_id, purpose) as used. Returns the count."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_codes.update()
                .where(
                    (_otp_codes.c.user_id == user_id)
                    & (_otp_codes.c.purpose == purpose)
                    & (_otp_codes.c.used == 0)
                )
                .values(used=1)
            )
            conn.commit()
        return result.rowcount

    def latest_unused_otp(self, user_id: str, code_hash: str, purpose: str) -> Optional[OtpCode]:
        """Return the newest unused code matching all three fields, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _otp_codes.select()
                .where(
                    (_otp_codes.c.user_id == user_id)
                    & (_otp_codes.c.code_hash == code_hash)
                    & (_otp_codes.c.purpose == purpose)
                    & (_otp_codes.c.used == 0)
                )
                .order_by(_otp_codes.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def mark_otp_used(self, otp_id: int) -> bool:
        """Conditionally flip used 0 -> 1. True only for the caller that flipped it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_codes.update().where((_otp_codes.c.id == otp_id) & (_otp_codes.c.used == 0)).values(used=1)
            )
            conn.commit()
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def store_refresh_token(self, record: RefreshToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=record.user_id,
                    token=record.token,
                    created_at=record.created_at or _now_iso(),
                    expires_at=record.expires_at,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_refresh_token(self, token: str) -> int:
        """Delete the record(s) for a token string and return how many were removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()
        return result.rowcount

    def delete_user_refresh_tokens(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_refresh_tokens(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return count or 0

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self, now_iso: Optional[str] = None) -> int:
        """Delete expired refresh tokens and expired or used codes. Returns rows removed.

        Timestamps are written by to_iso() with a fixed width, so a string
        comparison orders them correctly.
        """
        cutoff = now_iso or _now_iso()
        with self.engine.connect() as conn:
            tokens = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < cutoff))
            codes = conn.execute(
                _otp_codes.delete().where((_otp_codes.c.expires_at < cutoff) | (_otp_codes.c.used == 1))
            )
            conn.commit()
        return tokens.rowcount + codes.rowcount

    def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(_users.select().limit(1)).fetchall()
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _dump_profile(user: User) -> Optional[str]:
    profile = profile_to_dict(user.profile)
    return json.dumps(profile) if profile is not None else None


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        role=row.role,
        phone_number=row.phone_number,
        profile_picture_url=row.profile_picture_url,
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
        profile=profile_from_dict(row.role, json.loads(row.profile) if row.profile else None),
    )


def _row_to_otp(row) -> OtpCode:
    return OtpCode(
        id=row.id,
        user_id=row.user_id,
        code_hash=row.code_hash,
        purpose=row.purpose,
        created_at=row.created_at,
        expires_at=row.expires_at,
        used=bool(row.used),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
