"""
auth/policy.py -- Role and ownership checks.

Pure functions of (identity, requirement). They never look at tokens or the
store -- the Gate has already resolved the Identity they receive. FastAPI
wiring lives in auth/dependencies.py.
"""

from __future__ import annotations

from collections.abc import Iterable

from auth.errors import AuthorizationError
from auth.models import Identity, Role


def check_role(identity: Identity, allowed: Iterable[str]) -> Identity:
    """Admit identity if its role is in `allowed`; otherwise raise 403 naming both roles."""
    roles = [r.value if isinstance(r, Role) else r for r in allowed]
    if identity.role not in roles:
        raise AuthorizationError(f"Access denied. Required role: {' or '.join(roles)}. Your role: {identity.role}")
    return identity


def check_owner(identity: Identity, owner_id: object) -> Identity:
    """Admit the resource owner or any admin; otherwise raise 403."""
    if identity.role == Role.admin.value:
        return identity
    if owner_id is not None and str(owner_id) == identity.id:
        return identity
    raise AuthorizationError("Access denied. You can only access your own resources.")
