"""
API request and response models for the Planit REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format: every body uses camelCase field names (alias_generator=to_camel);
handlers still read snake_case attributes. Every response is wrapped in the
envelope {success, message?, data?, errors?}.
"""

from dataclasses import asdict
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from auth.passwords import password_problems

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
OTP_PATTERN = r"^\d{6}$"
PHONE_PATTERN = r"^\+?[0-9 ()-]{7,20}$"


class _CamelModel(BaseModel):
    """Base for request bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _check_password(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError("; ".join(problems))
    return value


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class SignupRequest(_CamelModel):
    """Request body for POST /api/auth/signup.

    role accepts planner or vendor only. Admin accounts come from the
    operator CLI (main.py create-admin).
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(max_length=128)
    full_name: str = Field(min_length=2, max_length=100)
    role: Literal["planner", "vendor"] = "planner"
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password(value)


class VerifyEmailRequest(_CamelModel):
    user_id: str = Field(min_length=1, max_length=64)
    otp: str = Field(pattern=OTP_PATTERN)


class ResendOtpRequest(_CamelModel):
    user_id: str = Field(min_length=1, max_length=64)


class LoginRequest(_CamelModel):
    """Request body for POST /api/auth/login.

    Only shape is checked here. Whether the password is right is the
    service's business, and it answers with the same 401 either way.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class ForgotPasswordRequest(_CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class ResetPasswordRequest(_CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    reset_code: str = Field(pattern=OTP_PATTERN)
    new_password: str = Field(max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password(value)


class RefreshRequest(_CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(_CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(_CamelModel):
    """Request body for PUT /api/auth/change-password.

    The new password is policy-checked by the service after the current one
    is confirmed, so a wrong current password is always reported as 401.
    """

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Profile update
# ---------------------------------------------------------------------------


class AddressPatch(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    street: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)


class SocialMediaPatch(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    facebook: Optional[str] = Field(default=None, max_length=255)
    instagram: Optional[str] = Field(default=None, max_length=255)
    twitter: Optional[str] = Field(default=None, max_length=255)
    linkedin: Optional[str] = Field(default=None, max_length=255)


class PriceRangePatch(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    min: Optional[float] = Field(default=None, ge=0)
    max: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class ProfileUpdate(_CamelModel):
    """Request body for PUT /api/auth/profile.

    Every field is optional; only fields present in the body are applied.
    Unknown keys (role, email, password, ...) fail validation with 400.
    Which of the known keys a caller may touch depends on their role and is
    decided by AccountService.update_profile().
    """

    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    profile_picture_url: Optional[str] = Field(default=None, max_length=2048)

    # vendor
    business_name: Optional[str] = Field(default=None, max_length=200)
    business_description: Optional[str] = Field(default=None, max_length=2000)
    category: Optional[str] = Field(default=None, max_length=100)
    address: Optional[AddressPatch] = None
    cac_number: Optional[str] = Field(default=None, max_length=50)
    cac_document: Optional[str] = Field(default=None, max_length=2048)
    social_media: Optional[SocialMediaPatch] = None
    website: Optional[str] = Field(default=None, max_length=255)
    portfolio: Optional[list[str]] = Field(default=None, max_length=50)
    services: Optional[list[str]] = Field(default=None, max_length=50)
    price_range: Optional[PriceRangePatch] = None
    availability: Optional[bool] = None

    # planner
    bio: Optional[str] = Field(default=None, max_length=2000)
    preferences: Optional[dict[str, Any]] = None

    def to_patch(self) -> dict:
        """Return only the fields the caller sent, snake_case, nested models as dicts."""
        patch = self.model_dump(exclude_unset=True)
        if "full_name" in patch and patch["full_name"] is None:
            del patch["full_name"]
        # A null inside address, socialMedia or priceRange leaves the stored value alone.
        for key in ("address", "social_media", "price_range"):
            if isinstance(patch.get(key), dict):
                patch[key] = {k: v for k, v in patch[key].items() if v is not None}
        return patch


class VerificationStatusUpdate(_CamelModel):
    """Request body for PUT /api/vendors/{vendor_id}/verification."""

    status: Literal["pending", "approved", "rejected"]


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def camelize(value: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(value, dict):
        return {to_camel(str(k)): camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class UserResponse(_CamelResponse):
    """Full account view. There is deliberately no password_hash field."""

    id: str
    email: str
    full_name: str
    role: str
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_active: bool
    email_verified: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    profile: Optional[dict] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            phone_number=user.phone_number,
            profile_picture_url=user.profile_picture_url,
            is_active=user.is_active,
            email_verified=user.email_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
            profile=camelize(asdict(user.profile)) if user.profile is not None else None,
        )


class UserSummary(_CamelResponse):
    """Returned by signup: enough to call verify-email, nothing more."""

    id: str
    email: str
    full_name: str
    role: str
    email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            email_verified=user.email_verified,
        )


class VendorResponse(_CamelResponse):
    """Public vendor listing row. Contact details stay private."""

    id: str
    full_name: str
    profile_picture_url: Optional[str] = None
    created_at: Optional[str] = None
    profile: dict
    is_own_profile: bool = False

    @classmethod
    def from_user(cls, user: User, viewer_id: Optional[str] = None) -> "VendorResponse":
        return cls(
            id=user.id,
            full_name=user.full_name,
            profile_picture_url=user.profile_picture_url,
            created_at=user.created_at,
            profile=camelize(asdict(user.profile)) if user.profile is not None else {},
            is_own_profile=viewer_id is not None and viewer_id == user.id,
        )


class SessionResponse(_CamelResponse):
    """User plus a fresh token pair (verify-email, login)."""

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class TokenPairResponse(_CamelResponse):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ApiResponse(BaseModel):
    """The envelope every endpoint returns, success or failure.

    Absent parts are omitted from the JSON rather than sent as null.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    errors: Optional[list[FieldError]] = None

    def to_wire(self) -> dict:
        body: dict = {"success": self.success}
        if self.message is not None:
            body["message"] = self.message
        if self.data is not None:
            body["data"] = self.data
        if self.errors is not None:
            body["errors"] = [e.model_dump() for e in self.errors]
        return body


class HealthComponents(BaseModel):
    model_config = ConfigDict(frozen=True)

    app: str = "ok"
    database: str
