"""
api/routes/users.py -- Per-user resource endpoints.

  GET /api/users/{user_id} -- full profile of one account (owner or admin)

The ownership check runs in the dependency, before the store is touched, so
a non-owner learns nothing about whether the id exists.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ApiResponse, UserResponse
from auth.dependencies import require_owner_or_admin
from auth.errors import NotFoundError
from auth.store import UserStore

router = APIRouter(prefix="/api/users")


@router.get("/{user_id}", dependencies=[Depends(require_owner_or_admin("user_id"))])
def get_user(request: Request, user_id: str) -> JSONResponse:
    store: UserStore = request.app.state.user_store
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return JSONResponse(
        content=ApiResponse(success=True, data={"user": UserResponse.from_user(user).to_wire()}).to_wire()
    )
