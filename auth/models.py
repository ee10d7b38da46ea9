"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
account service do the work; api/models.py owns the wire shape.

User is a tagged variant: `role` is the discriminator and `profile` carries
the role-specific payload (VendorProfile, PlannerProfile, or None for admins).
There is no class hierarchy per role.

Layer rule: no imports from api/, core/, or notify/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Optional, Union


class Role(str, Enum):
    planner = "planner"
    vendor = "vendor"
    admin = "admin"


class OtpPurpose(str, Enum):
    email_verification = "email_verification"
    password_reset = "password_reset"


class VerificationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


def _empty_address() -> dict:
    return {"street": None, "city": None, "state": None, "country": None, "zip_code": None}


def _empty_social() -> dict:
    return {"facebook": None, "instagram": None, "twitter": None, "linkedin": None}


def _default_price_range() -> dict:
    return {"min": 0, "max": 0, "currency": "NGN"}


@dataclass
class VendorProfile:
    """Business profile carried by vendor accounts.

    Everything is optional at signup; vendors fill it in later and the
    completion score (auth/vendors.py) tracks how far along they are.
    verified / verification_status are only written by the admin route.
    """

    business_name: Optional[str] = None
    business_description: Optional[str] = None
    category: Optional[str] = None
    address: dict = field(default_factory=_empty_address)
    cac_number: Optional[str] = None
    cac_document: Optional[str] = None
    social_media: dict = field(default_factory=_empty_social)
    website: Optional[str] = None
    portfolio: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)
    price_range: dict = field(default_factory=_default_price_range)
    availability: bool = True
    rating: float = 0.0
    review_count: int = 0
    verified: bool = False
    verification_status: str = VerificationStatus.pending.value
    verified_by: Optional[str] = None
    verified_at: Optional[str] = None
    profile_completed: bool = False
    profile_completion_percentage: int = 20


@dataclass
class PlannerProfile:
    bio: str = ""
    preferences: dict = field(default_factory=dict)
    notifications: list = field(default_factory=list)
    events_count: int = 0
    completed_events_count: int = 0


RoleProfile = Union[VendorProfile, PlannerProfile, None]

_PROFILE_TYPES = {
    Role.vendor.value: VendorProfile,
    Role.planner.value: PlannerProfile,
}


def default_profile(role: str, full_name: str) -> RoleProfile:
    """Return the signup-time payload for a role. Vendors start with business_name = full_name."""
    if role == Role.vendor.value:
        return VendorProfile(business_name=full_name)
    if role == Role.planner.value:
        return PlannerProfile()
    return None


def profile_from_dict(role: str, data: Optional[dict]) -> RoleProfile:
    """Rebuild a role payload from its stored dict, ignoring unknown keys."""
    cls = _PROFILE_TYPES.get(role)
    if cls is None:
        return None
    data = data or {}
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def profile_to_dict(profile: RoleProfile) -> Optional[dict]:
    return asdict(profile) if profile is not None else None


@dataclass
class User:
    """A Planit account.

    email is always stored case-folded. password_hash never leaves the auth
    package -- api/models.py has no field for it.
    """

    email: str
    full_name: str
    role: str
    id: Optional[str] = None
    password_hash: Optional[str] = None
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_active: bool = True
    email_verified: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    profile: RoleProfile = None


@dataclass(frozen=True)
class Identity:
    """Minimal projection of an authenticated user, produced by the Gate.

    Handlers and policy checks receive this explicitly -- it is never
    attached to a mutable request field.
    """

    id: str
    email: str
    role: str
    full_name: str

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, email=user.email, role=user.role, full_name=user.full_name)


@dataclass
class OtpCode:
    """A one-time code record. Only the HMAC of the code is stored."""

    user_id: str
    code_hash: str
    purpose: str
    expires_at: str
    id: Optional[int] = None
    created_at: Optional[str] = None
    used: bool = False


@dataclass
class RefreshToken:
    user_id: str
    token: str
    expires_at: str
    id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
