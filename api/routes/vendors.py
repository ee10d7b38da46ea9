"""
api/routes/vendors.py -- Vendor directory REST endpoints under /api/vendors.

Routes:
  GET /api/vendors                        -- list vendors, optional filters (optional auth)
  GET /api/vendors/search?q=              -- name search; 400 without q
  GET /api/vendors/profile/completion     -- caller's completion report (vendor only)
  GET /api/vendors/{vendor_id}            -- one vendor's public profile
  PUT /api/vendors/{vendor_id}/verification -- set verification status (admin only)

The static paths (/search, /profile/completion) are registered before the
/{vendor_id} path parameter so they are not captured by it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import ApiResponse, VendorResponse, VerificationStatusUpdate, camelize
from auth.dependencies import get_optional_identity, require_admin, require_vendor
from auth.models import Identity
from auth.vendors import VendorDirectory, VendorFilters

# Auth policy:
# - GET /api/vendors:                       optional auth -- marks the caller's own listing
# - GET /api/vendors/search:                public
# - GET /api/vendors/profile/completion:    vendor only
# - GET /api/vendors/{vendor_id}:           public
# - PUT /api/vendors/{vendor_id}/verification: admin only
router = APIRouter(prefix="/api/vendors")


def _directory(request: Request) -> VendorDirectory:
    return request.app.state.vendor_directory


def _ok(data: dict, message: Optional[str] = None) -> JSONResponse:
    return JSONResponse(content=ApiResponse(success=True, message=message, data=data).to_wire())


@router.get("")
def list_vendors(
    request: Request,
    category: Optional[str] = Query(default=None, max_length=100),
    city: Optional[str] = Query(default=None, max_length=100),
    state: Optional[str] = Query(default=None, max_length=100),
    verified: Optional[bool] = None,
    availability: Optional[bool] = None,
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> JSONResponse:
    filters = VendorFilters(
        category=category,
        city=city,
        state=state,
        verified=verified,
        availability=availability,
    )
    viewer_id = identity.id if identity is not None else None
    vendors = _directory(request).list_vendors(filters)
    return _ok(
        {
            "vendors": [VendorResponse.from_user(v, viewer_id).to_wire() for v in vendors],
            "count": len(vendors),
        }
    )


@router.get("/search")
def search_vendors(request: Request, q: str = Query(default="", max_length=100)) -> JSONResponse:
    vendors = _directory(request).search(q)
    return _ok(
        {
            "vendors": [VendorResponse.from_user(v).to_wire() for v in vendors],
            "count": len(vendors),
        }
    )


@router.get("/profile/completion")
def profile_completion(request: Request, identity: Identity = Depends(require_vendor)) -> JSONResponse:
    """Completion percentage and the sections still empty for the calling vendor."""
    return _ok(camelize(_directory(request).completion(identity.id)))


@router.get("/{vendor_id}")
def get_vendor(request: Request, vendor_id: str) -> JSONResponse:
    vendor = _directory(request).get(vendor_id)
    return _ok({"vendor": VendorResponse.from_user(vendor).to_wire()})


@router.put("/{vendor_id}/verification")
def set_verification(
    request: Request,
    vendor_id: str,
    body: VerificationStatusUpdate,
    identity: Identity = Depends(require_admin),
) -> JSONResponse:
    vendor = _directory(request).set_verification_status(vendor_id, body.status, identity.id)
    return _ok(
        {"vendor": VendorResponse.from_user(vendor).to_wire()},
        message=f"Vendor verification status updated to {body.status}",
    )
