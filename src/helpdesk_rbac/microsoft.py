"""
Microsoft Entra (Azure AD) OAuth provider and Microsoft Graph adapters.

Uses Authlib for the OIDC sign-in and for the app-only (client credentials)
Graph client, and httpx for Graph calls. The signed-in user's delegated token
is used for /me queries and group rosters; the app-only client reads the
SharePoint lists that hold the RBAC configuration.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.integrations.starlette_client import OAuth

from .exceptions import ConfigUnavailableError, DirectoryLookupError
from .settings import Settings

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
GROUP_ODATA_TYPE = "#microsoft.graph.group"

# OIDC + Graph delegated scopes; keep least-privileged in your tenant policy.
USER_SCOPES = "openid profile email offline_access User.Read GroupMember.Read.All"


def authority(tenant_id: Optional[str]) -> str:
    return f"https://login.microsoftonline.com/{tenant_id}/v2.0"


def create_oauth(settings: Settings) -> OAuth:
    """Authlib OAuth registry with the Microsoft client registered from OIDC metadata."""
    oauth = OAuth()
    oauth.register(
        name="microsoft",
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        server_metadata_url=f"{authority(settings.tenant_id)}/.well-known/openid-configuration",
        client_kwargs={"scope": USER_SCOPES},
    )
    return oauth


class MicrosoftOAuthProvider:
    """OAuth provider that signs users in with Microsoft Entra."""

    name: str = "microsoft"

    def __init__(self, oauth: OAuth):
        self.oauth = oauth

    async def login_redirect(self, request, redirect_uri: str):
        """Return RedirectResponse to IdP."""
        return await self.oauth.microsoft.authorize_redirect(request, redirect_uri)

    async def handle_callback(self, request) -> tuple[dict, str]:
        """Exchange code for token; return (userinfo, delegated access token). Raises OAuthError."""
        token = await self.oauth.microsoft.authorize_access_token(request)

        # Prefer userinfo parsed from the ID token; fall back to the userinfo endpoint
        userinfo = token.get("userinfo")
        if not userinfo:
            userinfo = await self.oauth.microsoft.userinfo(token=token)

        return dict(userinfo), token["access_token"]


def user_http_client(access_token: str, timeout: float = 20) -> httpx.AsyncClient:
    """httpx client carrying the signed-in user's delegated Graph token."""
    return httpx.AsyncClient(
        base_url=GRAPH_BASE,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=timeout,
    )


def app_http_client(settings: Settings, timeout: float = 20) -> AsyncOAuth2Client:
    """
    App-only Graph client (client credentials).

    Authlib fetches the token on first use and renews it when it expires.
    """
    return AsyncOAuth2Client(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        scope=GRAPH_DEFAULT_SCOPE,
        token_endpoint=f"https://login.microsoftonline.com/{settings.tenant_id}/oauth2/v2.0/token",
        grant_type="client_credentials",
        base_url=GRAPH_BASE,
        timeout=timeout,
    )


def _json_object(r: httpx.Response) -> Dict[str, Any]:
    """Decode a Graph response body; ValueError when it is not a JSON object."""
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object from {r.request.url}, got {type(data).__name__}")
    return data


class GraphClient:
    """Thin Graph wrapper: paged GETs over an httpx client."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def _ensure_token(self) -> None:
        if isinstance(self.http, AsyncOAuth2Client) and not self.http.token:
            await self.http.fetch_token(grant_type="client_credentials")

    async def get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        await self._ensure_token()
        r = await self.http.get(path, params=params)
        r.raise_for_status()
        return _json_object(r)

    async def get_all(self, path: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """Follow @odata.nextLink until the collection is exhausted."""
        await self._ensure_token()
        items: List[Dict[str, Any]] = []
        r = await self.http.get(path, params=params)
        while True:
            r.raise_for_status()
            data = _json_object(r)
            items.extend(item for item in data.get("value") or [] if isinstance(item, dict))
            next_link = data.get("@odata.nextLink")
            if not next_link:
                return items
            r = await self.http.get(next_link)


class GraphDirectoryClient:
    """DirectoryClient backed by Graph, using the signed-in user's token."""

    def __init__(self, graph: GraphClient):
        self.graph = graph

    async def get_my_group_ids(self) -> List[str]:
        try:
            items = await self.graph.get_all("/me/memberOf", params={"$select": "id,displayName"})
        except httpx.HTTPStatusError as e:
            raise DirectoryLookupError(f"memberOf failed: {e}", e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise DirectoryLookupError(f"memberOf failed: {e}") from e
        # memberOf also returns directory roles and administrative units
        return [item["id"] for item in items if item.get("@odata.type") == GROUP_ODATA_TYPE and item.get("id")]

    async def get_group_member_emails(self, group_id: str) -> List[str]:
        try:
            members = await self.graph.get_all(
                f"/groups/{group_id}/members", params={"$select": "mail,userPrincipalName"}
            )
        except httpx.HTTPStatusError as e:
            raise DirectoryLookupError(f"members of {group_id} failed: {e}", e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise DirectoryLookupError(f"members of {group_id} failed: {e}") from e

        emails = []
        for member in members:
            email = member.get("mail") or member.get("userPrincipalName")
            if isinstance(email, str) and email:
                emails.append(email.lower())
        return emails

    async def get_my_job_title(self) -> Optional[str]:
        try:
            me = await self.graph.get("/me", params={"$select": "jobTitle"})
        except (httpx.HTTPError, ValueError) as e:
            raise DirectoryLookupError(f"/me failed: {e}") from e
        job_title = me.get("jobTitle")
        return job_title if isinstance(job_title, str) else None


class SharePointListSource:
    """
    Reads a SharePoint list's items. Serves as GroupRoleSource for the RBAC
    groups list and as KeywordSource for the visibility keywords list.
    """

    def __init__(self, graph: GraphClient, site_id: str, list_id: str):
        self.graph = graph
        self.site_id = site_id
        self.list_id = list_id

    async def _rows(self) -> List[Dict[str, Any]]:
        # IsActive is filtered client-side; SharePoint only filters indexed columns
        path = f"/sites/{self.site_id}/lists/{self.list_id}/items"
        try:
            return await self.graph.get_all(path, params={"$expand": "fields", "$top": "500"})
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as e:
            # ValueError: a 200 whose body is not Graph JSON (proxy or sign-in page)
            raise ConfigUnavailableError(f"SharePoint list {self.list_id} unavailable: {e}") from e

    async def fetch_group_role_rows(self) -> List[Dict[str, Any]]:
        return await self._rows()

    async def fetch_keyword_rows(self) -> List[Dict[str, Any]]:
        return await self._rows()
