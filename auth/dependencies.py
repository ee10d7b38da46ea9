"""
auth/dependencies.py -- FastAPI Depends() helpers: the authentication Gate
and the role/ownership wrappers around auth/policy.py.

The Gate reads `Authorization: Bearer <access token>`, verifies it with the
TokenManager on app.state, resolves the user from the UserStore, and yields an
Identity. Handlers receive that Identity as a parameter; nothing is stashed
on the request object.

get_optional_identity() is the soft variant (returns None on failure).
get_current_identity() raises typed errors:
  401  missing/malformed header, invalid or expired token, unknown user
  403  account deactivated
  500  unexpected failure while verifying the token

Role and ownership wrappers consume the Gate's Identity and never re-verify
the token.

Layer rule: may import from fastapi (this module is part of the DI system),
never from api/ or notify/.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthenticationError, AuthorizationError, ServerError, ServiceError
from auth.models import Identity, Role
from auth.policy import check_owner, check_role
from auth.store import UserStore
from auth.tokens import TokenManager

logger = logging.getLogger("planit.auth")


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def _resolve_identity(request: Request, token: str) -> Identity:
    token_manager: TokenManager = request.app.state.token_manager
    user_store: UserStore = request.app.state.user_store

    try:
        claims = token_manager.verify_access_token(token)
    except AuthenticationError as exc:
        raise AuthenticationError("Token expired or invalid. Please login again.") from exc
    except Exception as exc:
        logger.exception("Unexpected error while verifying access token")
        raise ServerError("Authentication failed") from exc

    user = user_store.get_by_id(claims["sub"])
    if user is None:
        raise AuthenticationError("User not found. Token invalid.")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated. Please contact support.")
    return Identity.from_user(user)


def get_current_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationError("No token provided. Please authenticate.")
    return _resolve_identity(request, token)


def get_optional_identity(request: Request) -> Optional[Identity]:
    """Resolve the caller if a valid session is present; otherwise None. Never rejects."""
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        return _resolve_identity(request, token)
    except ServiceError:
        return None
    except SQLAlchemyError:
        logger.exception("Store lookup failed while resolving an optional identity")
        return None


# ---------------------------------------------------------------------------
# Role wrappers
# ---------------------------------------------------------------------------


def require_roles(*roles: str):
    """Build a dependency admitting only the given roles.

    Usage:
        @router.get("/dashboard", dependencies=[Depends(require_roles("planner", "admin"))])
    """

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return check_role(identity, roles)

    return dependency


require_admin = require_roles(Role.admin.value)
require_planner = require_roles(Role.planner.value)
require_vendor = require_roles(Role.vendor.value)
require_planner_or_admin = require_roles(Role.planner.value, Role.admin.value)
require_vendor_or_planner = require_roles(Role.vendor.value, Role.planner.value)


# ---------------------------------------------------------------------------
# Ownership wrapper
# ---------------------------------------------------------------------------


def require_owner_or_admin(param: str = "user_id", body_field: str = "userId"):
    """Build a dependency admitting the resource owner or an admin.

    The owner id is taken from the path parameter `param` first, then from
    the JSON body field `body_field`.
    """

    async def dependency(request: Request, identity: Identity = Depends(get_current_identity)) -> Identity:
        owner_id = request.path_params.get(param)
        if owner_id is None:
            owner_id = await _body_field(request, body_field)
        return check_owner(identity, owner_id)

    return dependency


async def _body_field(request: Request, name: str) -> Optional[object]:
    if not await request.body():
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    return body.get(name) if isinstance(body, dict) else None
