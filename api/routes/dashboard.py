"""
api/routes/dashboard.py -- Role home screens.

Returns a single payload suitable for driving the client's landing widgets:
  GET /api/dashboard/planner -- event counters from the planner profile (planner only)
  GET /api/dashboard/vendor  -- rating, verification and completion (vendor only)

Read-only aggregate routes -- no mutations here.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ApiResponse
from auth.dependencies import require_planner, require_vendor
from auth.models import Identity, PlannerProfile, VendorProfile
from auth.service import AccountService
from auth.vendors import missing_fields

router = APIRouter(prefix="/api/dashboard")


def _ok(data: dict) -> JSONResponse:
    return JSONResponse(content=ApiResponse(success=True, data=data).to_wire())


@router.get("/planner")
def planner_dashboard(request: Request, identity: Identity = Depends(require_planner)) -> JSONResponse:
    """Response:
    fullName             -- display name
    eventsCount          -- events created so far
    completedEventsCount -- events marked complete
    unreadNotifications  -- notifications without read=true
    """
    accounts: AccountService = request.app.state.account_service
    user = accounts.get_profile(identity)
    profile = user.profile if isinstance(user.profile, PlannerProfile) else PlannerProfile()
    unread = sum(1 for n in profile.notifications if not (isinstance(n, dict) and n.get("read")))
    return _ok(
        {
            "fullName": user.full_name,
            "eventsCount": profile.events_count,
            "completedEventsCount": profile.completed_events_count,
            "unreadNotifications": unread,
        }
    )


@router.get("/vendor")
def vendor_dashboard(request: Request, identity: Identity = Depends(require_vendor)) -> JSONResponse:
    accounts: AccountService = request.app.state.account_service
    user = accounts.get_profile(identity)
    profile = user.profile if isinstance(user.profile, VendorProfile) else VendorProfile()
    return _ok(
        {
            "businessName": profile.business_name,
            "rating": profile.rating,
            "reviewCount": profile.review_count,
            "verified": profile.verified,
            "verificationStatus": profile.verification_status,
            "profileCompletionPercentage": profile.profile_completion_percentage,
            "missingFields": missing_fields(user),
        }
    )
