"""
FastAPI auth router: login, callback, /me, logout.

The callback resolves the user's permissions through the RBACEngine with the
delegated Graph token, then keeps only the resulting snapshot in the session.
The token itself is not stored.
"""

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from .engine import RBACEngine
from .log import set_log_context
from .microsoft import GraphClient, GraphDirectoryClient, user_http_client
from .models import UserPermissions
from .protocol import OAuthProvider
from .session import current_permissions, get_permissions, store_permissions

logger = logging.getLogger(__name__)


def create_auth_router(provider: OAuthProvider, engine: RBACEngine, debug: bool = False):
    """Create an APIRouter with /login, /auth/callback, /me, and /logout endpoints."""
    router = APIRouter()

    @router.get("/login")
    async def login(request: Request):
        """Redirect the user to the IdP (Microsoft) login page."""
        return await provider.login_redirect(request, request.url_for("auth_callback"))

    @router.get("/auth/callback", name="auth_callback")
    async def auth_callback(request: Request):
        """Handle OAuth callback: exchange code for token, store user and permissions, redirect to /me."""
        try:
            userinfo, access_token = await provider.handle_callback(request)
        except OAuthError as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        email = userinfo.get("preferred_username") or userinfo.get("email") or ""
        display_name = userinfo.get("name") or email
        set_log_context(user_email=email.lower())

        async with user_http_client(access_token) as http:
            directory = GraphDirectoryClient(GraphClient(http))
            permissions, member_emails = await engine.sign_in(email, display_name, directory)

        # Persist user identity in session
        request.session["user"] = {
            "name": userinfo.get("name"),
            "preferred_username": userinfo.get("preferred_username"),
            "oid": userinfo.get("oid"),
            "tid": userinfo.get("tid"),
        }
        store_permissions(request, permissions)
        logger.info(
            "Signed in %s as %s (%d team members)", email.lower(), permissions.role.value, len(member_emails)
        )
        return RedirectResponse(url="/me")

    @router.get("/me")
    async def me(request: Request):
        """Return current user and permissions; redirect to /login if not authenticated."""
        if "user" not in request.session:
            return RedirectResponse(url="/login")
        permissions = await current_permissions(request)
        body = {
            "user": request.session["user"],
            "permissions": permissions.to_dict(),
            "groups_fetched_at": request.session.get("groups_fetched_at"),
        }
        # In DEBUG, expose the team-sharing roster for troubleshooting
        if debug:
            body["group_member_emails"] = await engine.group_member_emails(permissions)
        return body

    @router.post("/auth/refresh")
    async def refresh(permissions: UserPermissions = Depends(current_permissions)):
        """Drop cached permissions and the stored roster so both are rebuilt."""
        engine.permission_service.invalidate(permissions.email)
        engine.forget(permissions.email)
        return {"ok": True}

    @router.get("/logout")
    async def logout(request: Request):
        """Clear session and redirect to home."""
        if "user" in request.session:
            engine.forget(get_permissions(request).email)
        request.session.clear()
        return RedirectResponse(url="/")

    return router
