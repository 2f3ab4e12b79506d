"""
Session-stored permission snapshot and FastAPI dependencies.

The auth callback stores the user's UserPermissions (as a plain dict) in
request.session. Team-sharing rosters stay on the server (RBACEngine) and are
looked up per request from the snapshot's group ids, so the cookie does not
grow with group size. current_permissions rebuilds the snapshot per request;
require_role / require_roles / require_any_role build on it for route
protection.

Settings.role_refresh_interval_seconds forces re-login when the snapshot is
older than that (0 = never). Settings.session_max_idle_seconds treats the
user as inactive after that long without a request (0 = disabled).
"""

import time
from typing import List

from fastapi import Depends, HTTPException, Request

from .models import UserPermissions
from .permissions import DEFAULT_PERMISSIONS

PERMISSIONS_KEY = "permissions"


def store_permissions(request: Request, permissions: UserPermissions) -> None:
    request.session[PERMISSIONS_KEY] = permissions.to_dict()
    request.session["groups_fetched_at"] = int(time.time())


def get_permissions(request: Request) -> UserPermissions:
    """Return the stored snapshot, or DEFAULT_PERMISSIONS (sees nothing) when absent."""
    raw = request.session.get(PERMISSIONS_KEY)
    if not isinstance(raw, dict):
        return DEFAULT_PERMISSIONS
    try:
        return UserPermissions.from_dict(raw)
    except (KeyError, TypeError, ValueError):
        return DEFAULT_PERMISSIONS


def is_session_stale(request: Request) -> bool:
    """
    True if permissions are older than the refresh interval or the user has
    been idle too long. When True, the app should require re-authentication.
    """
    settings = request.app.state.settings
    interval = settings.role_refresh_interval_seconds
    max_idle = settings.session_max_idle_seconds
    now = int(time.time())

    if interval > 0:
        fetched_at = request.session.get("groups_fetched_at", 0)
        if now - fetched_at >= interval:
            return True

    if max_idle > 0:
        last_at = request.session.get("last_activity_at", now)
        if now - last_at >= max_idle:
            return True

    return False


def touch_session_activity(request: Request) -> None:
    """Update last_activity_at in the session so idle timeout is based on recent requests."""
    request.session["last_activity_at"] = int(time.time())


async def current_permissions(request: Request) -> UserPermissions:
    """Dependency: the signed-in user's permissions; 401 when absent or stale."""
    if "user" not in request.session:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if is_session_stale(request):
        raise HTTPException(
            status_code=401,
            detail="Session expired or inactive; please log in again",
        )
    touch_session_activity(request)
    return get_permissions(request)


async def current_group_member_emails(
    request: Request, permissions: UserPermissions = Depends(current_permissions)
) -> List[str]:
    """Dependency: the caller's team roster, resolved server-side from the snapshot."""
    return await request.app.state.engine.group_member_emails(permissions)


def require_roles(*required_roles: str):
    """
    Dependency: user must have ALL of the given roles (AND semantics).
    Roles are exclusive, so in practice this is used with a single role.
    """
    required = {role.lower() for role in required_roles if role}

    async def _dep(permissions: UserPermissions = Depends(current_permissions)) -> UserPermissions:
        if required - {permissions.role.value}:
            raise HTTPException(status_code=403, detail="Forbidden (missing required roles)")
        return permissions

    return _dep


def require_role(role: str):
    """Dependency: user must have the given role. Use as: Depends(require_role('admin'))."""
    return require_roles(role)


def require_any_role(*roles: str):
    """Dependency: user must have at least one of the given roles (OR semantics)."""
    required = {r.lower() for r in roles if r}

    async def _dep(permissions: UserPermissions = Depends(current_permissions)) -> UserPermissions:
        if permissions.role.value not in required:
            raise HTTPException(status_code=403, detail="Forbidden (no acceptable role)")
        return permissions

    return _dep
