"""
auth/vendors.py -- Vendor profile scoring and directory filtering.

Completion scoring weights (sum to 100):
  basic info        20   full name, email, phone, picture (5 each)
  business info     30   name 5, description 10, category 10, website 5
  location          15   city, state, street (5 each)
  services/pricing  20   any service 10, price_range.min > 0 10
  portfolio/social  10   any portfolio item 5, any social link 5
  verification       5   CAC number 3, CAC document 2
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from auth.errors import NotFoundError, ValidationError
from auth.models import Role, User, VendorProfile, VerificationStatus
from auth.store import UserStore


def completion_percentage(user: User) -> int:
    vendor: VendorProfile = user.profile or VendorProfile()
    address = vendor.address or {}
    score = 0

    score += 5 if user.full_name else 0
    score += 5 if user.email else 0
    score += 5 if user.phone_number else 0
    score += 5 if user.profile_picture_url else 0

    score += 5 if vendor.business_name else 0
    score += 10 if vendor.business_description else 0
    score += 10 if vendor.category else 0
    score += 5 if vendor.website else 0

    score += 5 if address.get("city") else 0
    score += 5 if address.get("state") else 0
    score += 5 if address.get("street") else 0

    score += 10 if vendor.services else 0
    score += 10 if ((vendor.price_range or {}).get("min") or 0) > 0 else 0

    score += 5 if vendor.portfolio else 0
    score += 5 if any((vendor.social_media or {}).values()) else 0

    score += 3 if vendor.cac_number else 0
    score += 2 if vendor.cac_document else 0

    return min(score, 100)


def missing_fields(user: User) -> list[str]:
    """Human-readable names of the profile sections still empty."""
    vendor: VendorProfile = user.profile or VendorProfile()
    address = vendor.address or {}
    missing: list[str] = []
    if not vendor.business_description:
        missing.append("Business Description")
    if not vendor.category:
        missing.append("Business Category")
    if not address.get("city") or not address.get("state"):
        missing.append("Business Location")
    if not vendor.services:
        missing.append("Services Offered")
    if not (vendor.price_range or {}).get("min"):
        missing.append("Price Range")
    if not vendor.portfolio:
        missing.append("Portfolio Images")
    if not vendor.cac_number:
        missing.append("CAC Registration Number")
    if not vendor.cac_document:
        missing.append("CAC Document")
    return missing


def completion_report(user: User) -> dict:
    vendor: VendorProfile = user.profile or VendorProfile()
    return {
        "percentage": vendor.profile_completion_percentage,
        "completed": vendor.profile_completed,
        "missing_fields": missing_fields(user),
    }


@dataclass
class VendorFilters:
    category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    verified: Optional[bool] = None
    availability: Optional[bool] = None

    def matches(self, user: User) -> bool:
        vendor: VendorProfile = user.profile or VendorProfile()
        address = vendor.address or {}
        if self.category is not None and vendor.category != self.category:
            return False
        if self.city is not None and address.get("city") != self.city:
            return False
        if self.state is not None and address.get("state") != self.state:
            return False
        if self.verified is not None and vendor.verified != self.verified:
            return False
        if self.availability is not None and vendor.availability != self.availability:
            return False
        return True


def filter_vendors(vendors: list[User], filters: VendorFilters) -> list[User]:
    return [v for v in vendors if filters.matches(v)]


def search_vendors(vendors: list[User], term: str) -> list[User]:
    """Case-insensitive substring match on business name or full name."""
    needle = term.lower()
    return [
        v
        for v in vendors
        if needle in (v.full_name or "").lower() or needle in ((v.profile and v.profile.business_name) or "").lower()
    ]


class VendorDirectory:
    """Read side of the vendor directory plus the admin verification action."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def list_vendors(self, filters: Optional[VendorFilters] = None) -> list[User]:
        vendors = self.store.list_users(role=Role.vendor.value)
        return filter_vendors(vendors, filters) if filters else vendors

    def search(self, term: str) -> list[User]:
        if not term or not term.strip():
            raise ValidationError("Search query is required")
        return search_vendors(self.store.list_users(role=Role.vendor.value), term.strip())

    def get(self, vendor_id: str) -> User:
        """Return the vendor. Non-vendor accounts are reported as not found."""
        user = self.store.get_by_id(vendor_id)
        if user is None or user.role != Role.vendor.value:
            raise NotFoundError("Vendor not found")
        return user

    def completion(self, vendor_id: str) -> dict:
        return completion_report(self.get(vendor_id))

    def set_verification_status(self, vendor_id: str, status: str, verified_by: str) -> User:
        if status not in {s.value for s in VerificationStatus}:
            raise ValidationError("Invalid verification status")
        vendor = self.get(vendor_id)
        profile: VendorProfile = vendor.profile or VendorProfile()
        profile.verification_status = status
        profile.verified = status == VerificationStatus.approved.value
        profile.verified_by = verified_by
        profile.verified_at = datetime.now(timezone.utc).isoformat()
        self.store.update_user(vendor.id, profile=profile)
        return self.get(vendor.id)
