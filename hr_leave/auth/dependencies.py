"""Auth dependencies — JWT validation, RBAC enforcement.

Identity comes from the access token alone: ``sub`` (employee id), ``org``
(organization id) and ``role``. Sessions and login live in the platform's
auth service, not here.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from hr_leave.common.constants import PERMISSIONS, UserRole
from hr_leave.common.exceptions import ForbiddenException
from hr_leave.config import settings

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {UserRole.system_admin, UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.hr_admin: {UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


@dataclass(frozen=True)
class Identity:
    """The authenticated caller."""

    employee_id: uuid.UUID
    organization_id: uuid.UUID
    role: UserRole


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(request: Request) -> Identity:
    """Validate the JWT and return the caller's identity."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(payload["sub"])
        organization_id = uuid.UUID(payload["org"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token is missing identity claims.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    identity = Identity(employee_id=employee_id, organization_id=organization_id, role=role)
    request.state.user_role = role
    return identity


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. system_admin can access hr_admin endpoints.
    """

    async def _check(identity: Identity = Depends(get_current_user)) -> Identity:
        effective_roles = _ROLE_HIERARCHY.get(identity.role, {identity.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{identity.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return identity

    return _check


# ── Permission-based dependency ─────────────────────────────────────

def require_permission(permission: str) -> Callable:
    """Return a FastAPI dependency that enforces a specific permission string."""

    async def _check(identity: Identity = Depends(get_current_user)) -> Identity:
        role_permissions = PERMISSIONS.get(identity.role, [])
        if permission not in role_permissions:
            raise ForbiddenException(
                detail=f"Permission '{permission}' is not granted to role '{identity.role.value}'.",
            )
        return identity

    return _check
