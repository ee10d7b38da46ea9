"""
auth/service.py -- Account lifecycle orchestration.

AccountService composes UserStore, OTPManager and TokenManager into the
signup / verify / login / refresh / logout / password flows. Every failure
is a typed ServiceError; the HTTP boundary in api/main.py renders it.

Account states:
  unregistered -> pending_verification   signup
  pending_verification -> active         verify_email
  active <-> deactivated                 operator action only (main.py)

Login policy: require_verified_login=True (the default) refuses tokens to an
account whose email is not verified. The 401 carries userId and
requiresVerification so a client can route the user to resend-otp.

Credential changes (change_password, reset_password) revoke every refresh
token of the account, forcing a fresh login on every device.

Layer rule: no imports from api/ or notify/. The mailer is passed in.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from auth.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from auth.models import (
    Identity,
    OtpPurpose,
    PlannerProfile,
    Role,
    TokenPair,
    User,
    VendorProfile,
    default_profile,
)
from auth.otp import OTPManager, OtpStatus
from auth.passwords import burn_password_check, password_problems, verify_password
from auth.store import UserStore
from auth.tokens import TokenManager
from auth.vendors import completion_percentage

logger = logging.getLogger("planit.auth")

_INVALID_CREDENTIALS = "Invalid email or password"
_DEACTIVATED = "Account is deactivated. Please contact support."

_COMMON_PROFILE_FIELDS = {"full_name", "phone_number", "profile_picture_url"}
_VENDOR_PROFILE_FIELDS = {
    "business_name",
    "business_description",
    "category",
    "address",
    "cac_number",
    "cac_document",
    "social_media",
    "website",
    "portfolio",
    "services",
    "price_range",
    "availability",
}
_PLANNER_PROFILE_FIELDS = {"bio", "preferences"}
# Nested dicts merged key-by-key instead of replaced wholesale.
_MERGED_FIELDS = {"address", "social_media", "price_range", "preferences"}


class MailSender(Protocol):
    def send_otp_email(self, to_email: str, code: str, full_name: str) -> bool: ...

    def send_password_reset_email(self, to_email: str, code: str) -> bool: ...

    def send_welcome_email(self, to_email: str, full_name: str) -> bool: ...


def _check_password_policy(password: str, field: str) -> None:
    problems = password_problems(password)
    if problems:
        raise ValidationError(
            "Validation failed",
            errors=[{"field": field, "message": message} for message in problems],
        )


def _raise_for_otp(status: OtpStatus, label: str) -> None:
    if status is OtpStatus.expired:
        raise ValidationError(f"{label[0].upper()}{label[1:]} has expired. Please request a new one.")
    if status is not OtpStatus.valid:
        raise ValidationError(f"Invalid {label}")


class AccountService:
    """Signup, verification, session and password flows.

    All collaborators are injected; the service holds no other state, so one
    instance serves every request concurrently.
    """

    def __init__(
        self,
        store: UserStore,
        otp: OTPManager,
        tokens: TokenManager,
        mailer: MailSender,
        require_verified_login: bool = True,
    ) -> None:
        self.store = store
        self.otp = otp
        self.tokens = tokens
        self.mailer = mailer
        self.require_verified_login = require_verified_login

    def _get_user(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def signup(
        self,
        email: str,
        password: str,
        full_name: str,
        role: str = Role.planner.value,
        phone_number: Optional[str] = None,
    ) -> User:
        """Create a pending_verification account and send its verification code.

        Admin accounts cannot be self-registered; they come from the operator CLI.
        """
        if role not in (Role.planner.value, Role.vendor.value):
            raise ValidationError(
                "Validation failed",
                errors=[{"field": "role", "message": "Role must be one of: planner, vendor"}],
            )
        _check_password_policy(password, "password")
        if self.store.get_by_email(email) is not None:
            raise ConflictError("User with this email already exists")

        user_id = self.store.create_user(
            User(
                email=email,
                full_name=full_name,
                role=role,
                phone_number=phone_number,
                profile=default_profile(role, full_name),
            ),
            password,
        )
        user = self._get_user(user_id)
        code = self.otp.issue(user.id, OtpPurpose.email_verification.value)
        self.mailer.send_otp_email(user.email, code, user.full_name)
        logger.info("signup user=%s role=%s", user.id, role)
        return user

    def verify_email(self, user_id: str, code: str) -> tuple[User, TokenPair]:
        """Consume an email_verification code, activate the account, and open a session."""
        user = self._get_user(user_id)
        if user.email_verified:
            raise ValidationError("Email already verified")
        if not user.is_active:
            raise AuthorizationError(_DEACTIVATED)

        _raise_for_otp(self.otp.verify(user.id, code, OtpPurpose.email_verification.value), "OTP")

        self.store.set_email_verified(user.id)
        user = self._get_user(user.id)
        pair = self.tokens.issue_pair(user)
        self.mailer.send_welcome_email(user.email, user.full_name)
        logger.info("email verified user=%s", user.id)
        return user, pair

    def resend_otp(self, user_id: str) -> None:
        user = self._get_user(user_id)
        if user.email_verified:
            raise ValidationError("Email already verified")
        code = self.otp.issue(user.id, OtpPurpose.email_verification.value)
        self.mailer.send_otp_email(user.email, code, user.full_name)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """Check credentials and open a session.

        Unknown email and wrong password produce the same 401 and take the
        same time: bcrypt always runs, against a dummy hash if needed.
        """
        user = self.store.get_by_email(email)
        if user is None:
            burn_password_check(password)
            logger.info("login failed: unknown email")
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash or ""):
            logger.info("login failed: bad password user=%s", user.id)
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not user.is_active:
            raise AuthorizationError(_DEACTIVATED)
        if self.require_verified_login and not user.email_verified:
            raise AuthenticationError(
                "Please verify your email before logging in",
                data={"userId": user.id, "requiresVerification": True},
            )
        pair = self.tokens.issue_pair(user)
        logger.info("login user=%s", user.id)
        return user, pair

    def refresh(self, refresh_token: str) -> tuple[User, TokenPair]:
        """Rotate a refresh token. The presented token is dead afterwards."""
        return self.tokens.rotate(refresh_token)

    def logout(self, identity: Identity, refresh_token: str) -> None:
        """Revoke one refresh token. Succeeds even if it was already gone."""
        removed = self.tokens.revoke(refresh_token)
        logger.info("logout user=%s removed=%d", identity.id, removed)

    def logout_all(self, identity: Identity) -> None:
        self.tokens.revoke_all(identity.id)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> None:
        """Send a reset code if the account exists. The caller always answers 200."""
        user = self.store.get_by_email(email)
        if user is None or not user.is_active:
            return
        code = self.otp.issue(user.id, OtpPurpose.password_reset.value)
        self.mailer.send_password_reset_email(user.email, code)

    def reset_password(self, email: str, reset_code: str, new_password: str) -> None:
        _check_password_policy(new_password, "newPassword")
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        _raise_for_otp(self.otp.verify(user.id, reset_code, OtpPurpose.password_reset.value), "reset code")
        self.store.update_password(user.id, new_password)
        self.tokens.revoke_all(user.id)
        logger.info("password reset user=%s", user.id)

    def change_password(self, identity: Identity, current_password: str, new_password: str) -> None:
        user = self._get_user(identity.id)
        if not verify_password(current_password, user.password_hash or ""):
            raise AuthenticationError("Current password is incorrect")
        _check_password_policy(new_password, "newPassword")
        self.store.update_password(user.id, new_password)
        self.tokens.revoke_all(user.id)
        logger.info("password changed user=%s", user.id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, identity: Identity) -> User:
        return self._get_user(identity.id)

    def update_profile(self, identity: Identity, patch: dict) -> User:
        """Apply a role-appropriate partial update.

        patch uses snake_case keys. Keys outside the caller's role whitelist
        (including role, email, password) are rejected with 400.
        """
        user = self._get_user(identity.id)
        if user.role == Role.vendor.value:
            role_fields = _VENDOR_PROFILE_FIELDS
        elif user.role == Role.planner.value:
            role_fields = _PLANNER_PROFILE_FIELDS
        else:
            role_fields = set()

        rejected = sorted(set(patch) - _COMMON_PROFILE_FIELDS - role_fields)
        if rejected:
            raise ValidationError(
                "Validation failed",
                errors=[{"field": name, "message": f"Field cannot be updated by a {user.role}"} for name in rejected],
            )
        if not patch:
            raise ValidationError("No fields to update.")

        updates = {k: v for k, v in patch.items() if k in _COMMON_PROFILE_FIELDS}
        profile = user.profile
        for key, value in patch.items():
            if key not in role_fields:
                continue
            if key in _MERGED_FIELDS and isinstance(value, dict):
                value = {**(getattr(profile, key) or {}), **value}
            setattr(profile, key, value)

        for key, value in updates.items():
            setattr(user, key, value)
        if isinstance(profile, VendorProfile):
            profile.profile_completion_percentage = completion_percentage(user)
            profile.profile_completed = profile.profile_completion_percentage == 100
        if isinstance(profile, (VendorProfile, PlannerProfile)):
            updates["profile"] = profile

        self.store.update_user(user.id, **updates)
        return self._get_user(user.id)
